"""Error taxonomy for Game Server Deploy"""

from typing import Optional


class DeployError(Exception):
    """Base error for deployment operations"""

    code = "DEPLOY_ERROR"


class ValidationError(DeployError):
    """Malformed or out-of-range server configuration"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class AuthError(DeployError):
    """Credential mint or exchange failure"""

    code = "AUTH_ERROR"

    ASSERTION = "assertion"
    EXCHANGE = "exchange"

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        message = f"Authentication failed at {stage} stage"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class ProviderError(DeployError):
    """Provisioning, termination or status failure at a hosting provider"""

    code = "PROVIDER_ERROR"

    NOT_IMPLEMENTED = "not_implemented"
    TRANSIENT = "transient"
    PERMANENT = "permanent"

    def __init__(self, provider: str, kind: str, message: str):
        self.provider = provider
        self.kind = kind
        super().__init__(message)

    @property
    def transient(self) -> bool:
        return self.kind == self.TRANSIENT


class ConflictError(DeployError):
    """A deployment for the same (owner, name) is already in flight"""

    code = "CONFLICT"


class NotFoundError(DeployError):
    """Unknown server id"""

    code = "NOT_FOUND"


class DeploymentTimeoutError(DeployError):
    """Deployment exceeded the caller-specified bound"""

    code = "TIMEOUT"

    def __init__(self, timeout: float, server_id: Optional[str] = None):
        self.timeout = timeout
        self.server_id = server_id
        super().__init__(f"Deployment did not finish within {timeout:g}s")


class PayloadError(DeployError):
    """Webhook payload is missing a required field"""

    code = "PAYLOAD_ERROR"
