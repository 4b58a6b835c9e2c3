"""Base interface for hosting providers"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..models import DeploymentResult, HostingProvider, ServerConfig, ServerStatus

logger = logging.getLogger(__name__)


class ProviderInterface(ABC):
    """
    Contract every hosting provider variant implements

    A provider that cannot do something returns a failure outcome instead of
    raising: provision() gives a DeploymentResult with success=False,
    terminate() gives False and fetch_status() gives None. Exceptions
    (ProviderError) are reserved for calls that were attempted and failed.
    """

    provider: HostingProvider
    label: str

    @classmethod
    def from_settings(cls, settings) -> "ProviderInterface":
        return cls()

    @abstractmethod
    async def provision(self, config: ServerConfig) -> DeploymentResult:
        """Create a new instance for config"""
        pass

    @abstractmethod
    async def terminate(self, server_id: str) -> bool:
        """Stop and release an instance"""
        pass

    @abstractmethod
    async def fetch_status(self, server_id: str) -> Optional[ServerStatus]:
        """Query the current instance status, None if the provider cannot tell"""
        pass


class UnimplementedProvider(ProviderInterface):
    """Provider that is known but deliberately not supported yet"""

    async def provision(self, config: ServerConfig) -> DeploymentResult:
        logger.warning(f"{self.label} provisioning requested for {config.name} but not implemented")
        return DeploymentResult.failure(f"{self.label} deployment not implemented yet")

    async def terminate(self, server_id: str) -> bool:
        logger.warning(f"{self.label} termination of {server_id} not implemented")
        return False

    async def fetch_status(self, server_id: str) -> Optional[ServerStatus]:
        return None
