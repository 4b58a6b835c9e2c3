"""DigitalOcean provider implementation"""

import logging
import re
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..cloud_init import generate_user_data
from ..exceptions import ProviderError
from ..models import DeploymentResult, DeploymentStatus, HostingProvider, ServerConfig, ServerStatus
from .base import ProviderInterface
from .registry import register_provider

logger = logging.getLogger(__name__)

PENDING_IP = "pending"

# (vcpus, memory_gb, slug), smallest first. The first entry satisfying both
# cpu_cores and ram_gb is chosen.
SIZE_TABLE = [
    (1, 1, "s-1vcpu-1gb"),
    (1, 2, "s-1vcpu-2gb"),
    (2, 2, "s-2vcpu-2gb"),
    (2, 4, "s-2vcpu-4gb"),
    (4, 8, "s-4vcpu-8gb"),
    (8, 16, "s-8vcpu-16gb"),
]

# Generic region names accepted in ServerConfig -> DigitalOcean datacenter slugs
REGION_ALIASES = {
    "us-east-1": "nyc3",
    "us-central-1": "nyc1",
    "us-west-1": "sfo3",
    "eu-west-1": "lon1",
    "eu-central-1": "fra1",
    "ap-southeast-1": "sgp1",
}

DROPLET_STATUS = {
    "new": ServerStatus.STARTING,
    "active": ServerStatus.RUNNING,
    "off": ServerStatus.STOPPED,
    "archive": ServerStatus.STOPPED,
}


def select_size(cpu_cores: int, ram_gb: int) -> str:
    """
    Map requested resources to a droplet size slug

    Raises:
        ProviderError: permanent, if no size is large enough
    """
    for vcpus, memory, slug in SIZE_TABLE:
        if vcpus >= cpu_cores and memory >= ram_gb:
            return slug
    raise ProviderError(
        HostingProvider.DIGITALOCEAN.value,
        ProviderError.PERMANENT,
        f"No DigitalOcean size offers {cpu_cores} vCPUs and {ram_gb} GB RAM"
    )


def droplet_name(name: str) -> str:
    """Droplet names must be valid hostnames"""
    slug = re.sub(r"[^a-z0-9-]+", "-", name.lower()).strip("-")
    return slug[:63] or "game-server"


def _public_ipv4(droplet: Dict[str, Any]) -> Optional[str]:
    for network in droplet.get("networks", {}).get("v4", []):
        if network.get("type") == "public":
            return network.get("ip_address")
    return None


@register_provider
class DigitalOceanProvider(ProviderInterface):
    """Provisions droplets through the DigitalOcean v2 API"""

    provider = HostingProvider.DIGITALOCEAN
    label = "DigitalOcean"

    def __init__(self, token: Optional[str] = None,
                 api_url: str = "https://api.digitalocean.com/v2",
                 image: str = "ubuntu-22-04-x64", timeout: float = 60.0):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.image = image
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "DigitalOceanProvider":
        return cls(
            token=settings.digitalocean_token,
            api_url=settings.digitalocean_api_url,
            image=settings.digitalocean_image,
        )

    def _error(self, kind: str, message: str) -> ProviderError:
        return ProviderError(self.provider.value, kind, message)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        if not self.token:
            raise self._error(ProviderError.PERMANENT, "DigitalOcean API token not configured")

        headers = {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, f"{self.api_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise self._error(ProviderError.TRANSIENT, f"DigitalOcean API unreachable: {e}") from e

    @retry(
        retry=retry_if_exception(lambda e: isinstance(e, ProviderError) and e.transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        reraise=True,
    )
    async def _idempotent_request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._request(method, path, **kwargs)
        if response.status_code == 429 or response.status_code >= 500:
            raise self._error(ProviderError.TRANSIENT, f"{method} {path} failed: {response.status_code}")
        return response

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.status_code == 429 or response.status_code >= 500:
            kind = ProviderError.TRANSIENT
        else:
            kind = ProviderError.PERMANENT
        raise self._error(kind, f"{action} failed: {response.status_code} - {response.text}")

    async def provision(self, config: ServerConfig) -> DeploymentResult:
        """
        Create a droplet for config

        The create call is made once; a failure is reported as a transient or
        permanent ProviderError and left to the caller to retry.
        """
        body = {
            "name": droplet_name(config.name),
            "region": REGION_ALIASES.get(config.region, config.region),
            "size": select_size(config.cpu_cores, config.ram_gb),
            "image": self.image,
            "user_data": generate_user_data(config),
            "tags": ["game-server", droplet_name(config.game_type)],
        }
        logger.info(f"Creating droplet {body['name']} ({body['size']} in {body['region']})")

        response = await self._request("POST", "/droplets", json=body)
        if response.status_code != 202:
            self._raise_for_status(response, "Droplet creation")

        droplet = response.json().get("droplet", {})
        if "id" not in droplet:
            raise self._error(ProviderError.PERMANENT, "Droplet creation response missing droplet id")

        # IPs are usually assigned after creation; callers refresh later
        ip_address = _public_ipv4(droplet) or PENDING_IP
        logger.info(f"Droplet {droplet['id']} created for {config.name} (ip: {ip_address})")

        return DeploymentResult(
            success=True,
            server_id=str(droplet["id"]),
            ip_address=ip_address,
            domain=config.domain,
            port=config.port,
            status=DeploymentStatus.PROVISIONING,
        )

    async def terminate(self, server_id: str) -> bool:
        response = await self._idempotent_request("DELETE", f"/droplets/{server_id}")

        if response.status_code == 204:
            logger.info(f"Droplet {server_id} destroyed")
            return True
        if response.status_code == 404:
            logger.warning(f"Droplet {server_id} already gone")
            return True

        logger.error(f"Failed to destroy droplet {server_id}: {response.status_code}")
        return False

    async def fetch_status(self, server_id: str) -> Optional[ServerStatus]:
        response = await self._idempotent_request("GET", f"/droplets/{server_id}")

        if response.status_code == 404:
            return ServerStatus.STOPPED
        if response.status_code != 200:
            self._raise_for_status(response, "Droplet lookup")

        droplet = response.json().get("droplet", {})
        return DROPLET_STATUS.get(droplet.get("status"), ServerStatus.STARTING)
