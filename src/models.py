"""Domain models for Game Server Deploy"""

from dataclasses import dataclass, field, asdict, fields, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .exceptions import ValidationError

MAX_PLAYERS_LIMIT = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HostingProvider(str, Enum):
    """Supported hosting providers"""

    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"
    DIGITALOCEAN = "digitalocean"
    LINODE = "linode"
    VULTR = "vultr"
    SELF_HOSTED = "self_hosted"

    @classmethod
    def parse(cls, value: Any) -> "HostingProvider":
        """
        Parse a provider value, rejecting anything outside the enumeration

        Args:
            value: Provider enum member or lowercase string

        Returns:
            HostingProvider member

        Raises:
            ValidationError: If value is not a known provider
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        allowed = ", ".join(p.value for p in cls)
        raise ValidationError(f"Unknown provider {value!r} (expected one of: {allowed})", field="provider")


class DeploymentStatus(str, Enum):
    """Status vocabulary of a deployment result"""

    PROVISIONING = "provisioning"
    RUNNING = "running"
    MANUAL_SETUP = "manual-setup-required"
    ERROR = "error"


class ServerStatus(str, Enum):
    """Lifecycle status of a persisted server record"""

    STARTING = "starting"
    RUNNING = "running"
    MANUAL_SETUP = "manual-setup-required"
    STOPPED = "stopped"
    ERROR = "error"


def _require_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{key}' must be a non-empty string", field=key)
    return value


def _optional_int(data: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = data.get(key, default)
    if value is None:
        return None
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer", field=key)
    return value


def _optional_bool(data: Dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValidationError(f"'{key}' must be a boolean", field=key)
    return value


@dataclass(frozen=True)
class ServerConfig:
    """Server deployment configuration"""

    name: str
    game_type: str
    max_players: int
    region: str
    provider: HostingProvider

    # Server specifications
    cpu_cores: int = 2
    ram_gb: int = 4
    storage_gb: int = 20

    # Game-specific settings
    world_seed: Optional[int] = None
    game_mode: str = "survival"
    difficulty: str = "normal"

    # Network settings
    port: int = 25565
    enable_https: bool = True
    domain: Optional[str] = None

    def __post_init__(self):
        # Accept plain strings for known providers; unknown values are left for validate()
        if isinstance(self.provider, str) and not isinstance(self.provider, HostingProvider):
            try:
                object.__setattr__(self, "provider", HostingProvider(self.provider))
            except ValueError:
                pass

    def validate(self) -> "ServerConfig":
        """
        Check ranges and enumeration membership

        Returns:
            self, so calls can be chained

        Raises:
            ValidationError: On the first invalid field
        """
        for key in ("name", "game_type", "region"):
            value = getattr(self, key)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"'{key}' must be a non-empty string", field=key)

        if not isinstance(self.provider, HostingProvider):
            HostingProvider.parse(self.provider)

        for key in ("max_players", "port", "cpu_cores", "ram_gb", "storage_gb"):
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"'{key}' must be an integer", field=key)

        if not isinstance(self.enable_https, bool):
            raise ValidationError("'enable_https' must be a boolean", field="enable_https")

        if not 1 <= self.max_players <= MAX_PLAYERS_LIMIT:
            raise ValidationError(
                f"max_players must be between 1 and {MAX_PLAYERS_LIMIT}, got {self.max_players}",
                field="max_players"
            )
        if not 1 <= self.port <= 65535:
            raise ValidationError(f"port must be between 1 and 65535, got {self.port}", field="port")

        for key in ("cpu_cores", "ram_gb", "storage_gb"):
            if getattr(self, key) < 1:
                raise ValidationError(f"'{key}' must be at least 1", field=key)

        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerConfig":
        """
        Build a validated ServerConfig from a JSON-like mapping

        Missing optional fields take their defaults. Unknown provider values
        fail instead of falling back to a default provider.
        """
        if not isinstance(data, dict):
            raise ValidationError("Server config must be an object")

        defaults = cls.__dataclass_fields__
        domain = data.get("domain")
        if domain is not None and not isinstance(domain, str):
            raise ValidationError("'domain' must be a string", field="domain")

        max_players = _optional_int(data, "max_players", None)
        if max_players is None:
            raise ValidationError("'max_players' is required", field="max_players")

        config = cls(
            name=_require_str(data, "name"),
            game_type=_require_str(data, "game_type"),
            max_players=max_players,
            region=_require_str(data, "region"),
            provider=HostingProvider.parse(data.get("provider")),
            cpu_cores=_optional_int(data, "cpu_cores", defaults["cpu_cores"].default),
            ram_gb=_optional_int(data, "ram_gb", defaults["ram_gb"].default),
            storage_gb=_optional_int(data, "storage_gb", defaults["storage_gb"].default),
            world_seed=_optional_int(data, "world_seed", None),
            game_mode=str(data.get("game_mode") or defaults["game_mode"].default),
            difficulty=str(data.get("difficulty") or defaults["difficulty"].default),
            port=_optional_int(data, "port", defaults["port"].default),
            enable_https=_optional_bool(data, "enable_https", defaults["enable_https"].default),
            domain=domain,
        )
        return config.validate()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["provider"] = self.provider.value
        return data

    def with_overrides(self, **changes) -> "ServerConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class DeploymentResult:
    """Outcome of a provisioning attempt (also used as the provider outcome)"""

    success: bool
    server_id: str
    ip_address: str
    port: int
    status: DeploymentStatus
    domain: Optional[str] = None
    error_message: Optional[str] = None
    # Only set by the self-hosted provider; not part of the wire response
    setup_script: Optional[str] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.success and self.error_message is not None:
            raise ValueError("Successful deployment result cannot carry an error message")
        if not self.success:
            if self.status != DeploymentStatus.ERROR:
                raise ValueError("Failed deployment result must have status 'error'")
            if not self.error_message:
                raise ValueError("Failed deployment result must carry an error message")

    @classmethod
    def failure(cls, message: str) -> "DeploymentResult":
        return cls(
            success=False,
            server_id="",
            ip_address="",
            port=0,
            status=DeploymentStatus.ERROR,
            error_message=message,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the deploy response shape, omitting absent optionals"""
        data = {
            "success": self.success,
            "server_id": self.server_id,
            "ip_address": self.ip_address,
            "port": self.port,
            "status": self.status.value,
        }
        if self.domain is not None:
            data["domain"] = self.domain
        if self.error_message is not None:
            data["error_message"] = self.error_message
        return data


@dataclass
class ServerRecord:
    """Persisted server metadata, owned by ServerRegistry"""

    id: str
    owner: str
    name: str
    status: ServerStatus
    config: ServerConfig
    created_at: datetime = field(default_factory=utcnow)
    last_active: datetime = field(default_factory=utcnow)

    # Resource usage tracking
    cpu_usage: float = 0.0
    ram_usage: float = 0.0
    network_in: int = 0
    network_out: int = 0

    # Player statistics
    current_players: int = 0
    total_sessions: int = 0
    uptime_hours: float = 0.0

    # Provider/platform bookkeeping
    provider_server_id: Optional[str] = None
    ip_address: Optional[str] = None
    port: Optional[int] = None
    deployment_id: Optional[int] = None
    error_message: Optional[str] = None

    USAGE_FIELDS = (
        "cpu_usage", "ram_usage", "network_in", "network_out",
        "current_players", "total_sessions", "uptime_hours",
    )

    @property
    def provider(self) -> HostingProvider:
        return self.config.provider

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["status"] = self.status.value
        data["config"] = self.config.to_dict()
        data["created_at"] = self.created_at.isoformat()
        data["last_active"] = self.last_active.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerRecord":
        data = dict(data)
        config_data = dict(data.pop("config"))
        config_data["provider"] = HostingProvider.parse(config_data.get("provider"))
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["config"] = ServerConfig(**config_data)
        values["status"] = ServerStatus(values["status"])
        values["created_at"] = datetime.fromisoformat(values["created_at"])
        values["last_active"] = datetime.fromisoformat(values["last_active"])
        return cls(**values)


@dataclass(frozen=True)
class Credential:
    """Short-lived installation access token"""

    token: str
    issued_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime, skew: timedelta) -> bool:
        return now < self.expires_at - skew
