"""Configuration management for Game Server Deploy"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .models import HostingProvider

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".gamedeploy"
ENV_PREFIX = "GAMEDEPLOY_"

DEFAULT_CONFIG = {
    "version": 1,
    "log_level": "INFO",
    "github": {
        "api_url": "https://api.github.com",
        "app_id": None,
        "installation_id": None,
        "private_key_path": None,
        "deployments_repo": None,
        "jwt_algorithm": "RS256",
        "token_refresh_skew": 60,
    },
    "webhooks": {
        "trigger_repository": "artemis-game-server",
        "issue_prefix": "[SERVER]",
    },
    "deploy": {
        "default_provider": "digitalocean",
        "timeout_seconds": None,
    },
    "providers": {
        "digitalocean": {
            "api_url": "https://api.digitalocean.com/v2",
            "image": "ubuntu-22-04-x64",
        },
    },
}

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "LOG_LEVEL": "log_level",
    "GITHUB_API_URL": "github.api_url",
    "GITHUB_APP_ID": "github.app_id",
    "GITHUB_INSTALLATION_ID": "github.installation_id",
    "GITHUB_PRIVATE_KEY_PATH": "github.private_key_path",
    "GITHUB_DEPLOYMENTS_REPO": "github.deployments_repo",
    "TRIGGER_REPOSITORY": "webhooks.trigger_repository",
    "ISSUE_PREFIX": "webhooks.issue_prefix",
    "DEFAULT_PROVIDER": "deploy.default_provider",
    "DEPLOY_TIMEOUT": "deploy.timeout_seconds",
}


class ConfigManager:
    """Manages the YAML configuration file"""

    def __init__(self, config_dir: Path):
        """
        Initialize ConfigManager

        Args:
            config_dir: Configuration directory path
        """
        self.config_dir = config_dir
        self.config_file = config_dir / "config.yaml"
        self._config: Dict[str, Any] = {}

    def init(self) -> None:
        """Write the default configuration if none exists yet"""
        if not self.config_file.exists():
            logger.info("Creating default configuration")
            self.save_config(_deep_copy(DEFAULT_CONFIG))
        else:
            logger.info("Configuration file already exists")

        self.load_config()

    def load_config(self) -> dict:
        """
        Load configuration from file

        Returns:
            Configuration dictionary
        """
        if self.config_file.exists():
            logger.debug(f"Loading config from {self.config_file}")
            with open(self.config_file, 'r') as f:
                self._config = yaml.safe_load(f) or {}
        else:
            logger.debug("Config file not found, using defaults")
            self._config = {}

        return self._config

    def save_config(self, config: Optional[dict] = None) -> None:
        if config is not None:
            self._config = config

        logger.debug(f"Saving config to {self.config_file}")
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, 'w') as f:
            yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value, falling back to the built-in defaults

        Args:
            key: Configuration key (supports dot notation, e.g. "github.app_id")
            default: Value returned when neither file nor defaults define the key
        """
        if not self._config:
            self.load_config()

        value = _lookup(self._config, key)
        if value is None:
            value = _lookup(DEFAULT_CONFIG, key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value and persist it

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        if not self._config:
            self.load_config()

        keys = key.split('.')
        current = self._config
        for k in keys[:-1]:
            if not isinstance(current.get(k), dict):
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value

        self.save_config()
        logger.debug(f"Set config {key} = {value}")


def _lookup(config: Mapping[str, Any], key: str) -> Any:
    value: Any = config
    for k in key.split('.'):
        if not isinstance(value, Mapping):
            return None
        value = value.get(k)
        if value is None:
            return None
    return value


def _deep_copy(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _deep_copy(v) if isinstance(v, dict) else v for k, v in data.items()}


@dataclass(frozen=True)
class Settings:
    """
    Process-wide settings resolved once at startup

    Passed explicitly into every component that needs configuration; nothing
    reads configuration from module globals.
    """

    config_dir: Path
    log_level: str = "INFO"

    # GitHub App identity
    github_api_url: str = "https://api.github.com"
    github_app_id: Optional[str] = None
    github_installation_id: Optional[str] = None
    github_private_key: Optional[str] = None
    deployments_repo: Optional[str] = None
    jwt_algorithm: str = "RS256"
    token_refresh_skew: int = 60

    # Webhook routing
    trigger_repository: str = "artemis-game-server"
    issue_prefix: str = "[SERVER]"
    webhook_secret: Optional[str] = None

    # Deployment defaults
    default_provider: HostingProvider = HostingProvider.DIGITALOCEAN
    deploy_timeout: Optional[float] = None

    # Provider credentials
    digitalocean_api_url: str = "https://api.digitalocean.com/v2"
    digitalocean_image: str = "ubuntu-22-04-x64"
    digitalocean_token: Optional[str] = None

    @property
    def github_configured(self) -> bool:
        return bool(self.github_app_id and self.github_installation_id and self.github_private_key)


def load_settings(config_dir: Optional[Path] = None,
                  environ: Optional[Mapping[str, str]] = None,
                  secrets: Optional[Any] = None) -> Settings:
    """
    Resolve Settings from config.yaml, environment variables and the secrets vault

    Args:
        config_dir: Configuration directory (default: ~/.gamedeploy)
        environ: Environment mapping (default: os.environ)
        secrets: SecretsManager for private key and API tokens (optional)

    Returns:
        Settings instance
    """
    config_dir = config_dir or DEFAULT_CONFIG_DIR
    environ = os.environ if environ is None else environ

    manager = ConfigManager(config_dir)
    manager.load_config()

    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(f"{ENV_PREFIX}{env_name}")
        if value:
            _assign(manager._config, key, value)

    private_key = _read_private_key(manager.get("github.private_key_path"))
    webhook_secret = environ.get(f"{ENV_PREFIX}WEBHOOK_SECRET")
    do_token = environ.get(f"{ENV_PREFIX}DIGITALOCEAN_TOKEN")

    if secrets is not None:
        private_key = private_key or secrets.get_secret("github_private_key")
        webhook_secret = webhook_secret or secrets.get_secret("webhook_secret")
        do_token = do_token or secrets.get_secret("digitalocean_token")

    timeout = manager.get("deploy.timeout_seconds")

    settings = Settings(
        config_dir=config_dir,
        log_level=str(manager.get("log_level")).upper(),
        github_api_url=manager.get("github.api_url"),
        github_app_id=_as_str(manager.get("github.app_id")),
        github_installation_id=_as_str(manager.get("github.installation_id")),
        github_private_key=private_key,
        deployments_repo=manager.get("github.deployments_repo"),
        jwt_algorithm=manager.get("github.jwt_algorithm"),
        token_refresh_skew=int(manager.get("github.token_refresh_skew")),
        trigger_repository=manager.get("webhooks.trigger_repository"),
        issue_prefix=manager.get("webhooks.issue_prefix"),
        webhook_secret=webhook_secret,
        default_provider=HostingProvider.parse(manager.get("deploy.default_provider")),
        deploy_timeout=float(timeout) if timeout is not None else None,
        digitalocean_api_url=manager.get("providers.digitalocean.api_url"),
        digitalocean_image=manager.get("providers.digitalocean.image"),
        digitalocean_token=do_token,
    )
    logger.debug(f"Settings loaded from {config_dir}")
    return settings


def _assign(config: Dict[str, Any], key: str, value: Any) -> None:
    keys = key.split('.')
    current = config
    for k in keys[:-1]:
        if not isinstance(current.get(k), dict):
            current[k] = {}
        current = current[k]
    current[keys[-1]] = value


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _read_private_key(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    key_file = Path(path).expanduser()
    if not key_file.exists():
        logger.warning(f"GitHub App private key not found at {key_file}")
        return None
    return key_file.read_text()
