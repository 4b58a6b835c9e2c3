"""
GameDeploy - Facade wiring every service together

Settings are resolved once and passed into each component explicitly. The
API and the CLI both go through this class.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .config import DEFAULT_CONFIG_DIR, ConfigManager, Settings, load_settings
from .credentials import CredentialBroker
from .integrations.github import GitHubClient
from .job_manager import JobManager
from .models import DeploymentResult, HostingProvider, ServerConfig, ServerRecord
from .orchestrator import DeploymentOrchestrator
from .providers import ProviderRegistry
from .registry import ServerRegistry
from .vault import GITHUB_PRIVATE_KEY, WEBHOOK_SECRET, SecretsManager, provider_token_key
from .webhooks import WebhookRouter

logger = logging.getLogger(__name__)


class GameDeploy:
    """
    Main facade

    Delegates to:
    - DeploymentOrchestrator: deploy/stop/refresh/delete
    - ServerRegistry: persisted server records (and job history)
    - JobManager: background deployments
    - WebhookRouter: GitHub event handling
    """

    def __init__(self, config_dir: Optional[Path] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 settings: Optional[Settings] = None,
                 deployment_listener: Optional[Callable[[Dict[str, Any]], Any]] = None):
        """
        Initialize GameDeploy

        Args:
            config_dir: Custom config directory (default: ~/.gamedeploy)
            environ: Environment used for GAMEDEPLOY_* overrides (default: os.environ)
            settings: Pre-built settings; skips loading from disk
            deployment_listener: Receives forwarded `deployment` webhook payloads
        """
        self.config_dir = config_dir or (settings.config_dir if settings else DEFAULT_CONFIG_DIR)
        self._environ = environ
        self.deployment_listener = deployment_listener

        self.config = ConfigManager(self.config_dir)
        self.secrets = SecretsManager(self.config_dir)

        self.registry = ServerRegistry(self.config_dir)
        self.registry.load()
        self.job_manager = JobManager(storage=self.registry)

        self._wire(settings or load_settings(self.config_dir, environ, self.secrets))
        logger.info(f"GameDeploy initialized ({self.config_dir})")

    def _wire(self, settings: Settings) -> None:
        """
        Resolve settings into the services that depend on them

        The orchestrator and webhook router are built once. On reload their
        dependencies are swapped in place, so deploys already in flight stay
        guarded and pending compensation tasks stay tracked.
        """
        self.settings = settings
        logging.getLogger().setLevel(settings.log_level)

        self.github = GitHubClient(settings.github_api_url)
        self.broker = CredentialBroker.from_settings(settings, self.github)
        self.providers = ProviderRegistry.from_settings(settings)

        if not hasattr(self, "orchestrator"):
            self.orchestrator = DeploymentOrchestrator(
                broker=self.broker,
                providers=self.providers,
                registry=self.registry,
                github=self.github,
                deployments_repo=settings.deployments_repo,
            )
            self.webhooks = WebhookRouter(
                orchestrator=self.orchestrator,
                job_manager=self.job_manager,
                github=self.github,
                broker=self.broker,
                settings=settings,
                deployment_listener=self.deployment_listener,
            )
            return

        self.orchestrator.broker = self.broker
        self.orchestrator.providers = self.providers
        self.orchestrator.github = self.github
        self.orchestrator.deployments_repo = settings.deployments_repo

        self.webhooks.broker = self.broker
        self.webhooks.github = self.github
        self.webhooks.settings = settings

    def reload(self) -> None:
        """Re-read configuration and secrets"""
        self._wire(load_settings(self.config_dir, self._environ, self.secrets))

    # ==================== INITIALIZATION ====================

    def init(self) -> None:
        """Initialize configuration directory and files"""
        logger.info("Initializing Game Server Deploy...")
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config.init()
        self.secrets.init()
        self.registry.init()
        logger.info(f"✅ Initialized {self.config_dir}")

    # ==================== CONFIGURATION ====================

    def configure_github(self, app_id: str, installation_id: str, private_key: str,
                         deployments_repo: Optional[str] = None,
                         webhook_secret: Optional[str] = None) -> None:
        """
        Store GitHub App identity

        The private key and webhook secret go to the vault, ids to config.yaml.
        """
        self.config.set("github.app_id", str(app_id))
        self.config.set("github.installation_id", str(installation_id))
        if deployments_repo:
            self.config.set("github.deployments_repo", deployments_repo)

        self.secrets.set_secret(GITHUB_PRIVATE_KEY, private_key)
        if webhook_secret:
            self.secrets.set_secret(WEBHOOK_SECRET, webhook_secret)

        logger.info(f"GitHub App {app_id} configured (installation {installation_id})")
        self.reload()

    def configure_provider(self, provider: str, token: str, make_default: bool = False) -> None:
        """Store a hosting provider API token"""
        hosting = HostingProvider.parse(provider)
        self.secrets.set_secret(provider_token_key(hosting.value), token)
        if make_default:
            self.config.set("deploy.default_provider", hosting.value)

        logger.info(f"Provider {hosting.value} configured")
        self.reload()

    # ==================== DEPLOYMENTS ====================

    async def deploy(self, config: ServerConfig, owner: str,
                     timeout: Optional[float] = None) -> DeploymentResult:
        if timeout is None:
            timeout = self.settings.deploy_timeout
        return await self.orchestrator.deploy(config, owner, timeout=timeout)

    def list_servers(self, owner: str) -> List[ServerRecord]:
        return self.orchestrator.list_servers(owner)

    def get_server(self, server_id: str) -> ServerRecord:
        return self.orchestrator.get_server(server_id)

    async def stop_server(self, server_id: str) -> ServerRecord:
        return await self.orchestrator.stop_server(server_id)

    async def refresh_status(self, server_id: str) -> ServerRecord:
        return await self.orchestrator.refresh_status(server_id)

    def delete_server(self, server_id: str) -> None:
        self.orchestrator.delete_server(server_id)

    # ==================== LIFECYCLE ====================

    async def shutdown(self) -> None:
        """Wait for queued jobs and compensation tasks to finish"""
        logger.info("Waiting for background work to finish...")
        await self.job_manager.wait_all()
        await self.orchestrator.wait_background()
