"""Self-hosted provider: hands the operator a setup script instead of provisioning"""

import logging
from typing import Optional

from ..cloud_init import generate_user_data
from ..models import DeploymentResult, DeploymentStatus, HostingProvider, ServerConfig, ServerStatus
from .base import ProviderInterface
from .registry import register_provider

logger = logging.getLogger(__name__)

SELF_HOSTED_SERVER_ID = "self-hosted"
PLACEHOLDER_IP = "YOUR_SERVER_IP"


@register_provider
class SelfHostedProvider(ProviderInterface):
    """No remote calls; the caller runs the returned setup script on their own machine"""

    provider = HostingProvider.SELF_HOSTED
    label = "Self-hosted"

    async def provision(self, config: ServerConfig) -> DeploymentResult:
        logger.info(f"Generated self-hosted setup for {config.name} on port {config.port}")
        return DeploymentResult(
            success=True,
            server_id=SELF_HOSTED_SERVER_ID,
            ip_address=PLACEHOLDER_IP,
            domain=config.domain,
            port=config.port,
            status=DeploymentStatus.MANUAL_SETUP,
            setup_script=generate_user_data(config),
        )

    async def terminate(self, server_id: str) -> bool:
        # Nothing remote to release; the operator shuts the machine down
        return True

    async def fetch_status(self, server_id: str) -> Optional[ServerStatus]:
        return None
