"""
Deployment orchestrator

Drives one deployment attempt through its state machine:

    requested -> authenticating -> record_created -> provisioning
              -> running | manual_setup | failed

and owns the stop/refresh/delete lifecycle of persisted servers.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from .credentials import CredentialBroker
from .exceptions import (
    AuthError,
    ConflictError,
    DeployError,
    DeploymentTimeoutError,
    ProviderError,
    ValidationError,
)
from .integrations.github import GitHubClient, GitHubError
from .models import (
    DeploymentResult,
    DeploymentStatus,
    ServerConfig,
    ServerRecord,
    ServerStatus,
)
from .providers import ProviderInterface, ProviderRegistry, UnimplementedProvider
from .registry import ServerRegistry

logger = logging.getLogger(__name__)


class DeploymentState(str, Enum):
    REQUESTED = "requested"
    AUTHENTICATING = "authenticating"
    RECORD_CREATED = "record_created"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    MANUAL_SETUP = "manual_setup"
    FAILED = "failed"


TERMINAL_STATES = frozenset({DeploymentState.RUNNING, DeploymentState.MANUAL_SETUP, DeploymentState.FAILED})

TRANSITIONS = {
    DeploymentState.REQUESTED: {DeploymentState.AUTHENTICATING, DeploymentState.FAILED},
    DeploymentState.AUTHENTICATING: {DeploymentState.RECORD_CREATED, DeploymentState.FAILED},
    DeploymentState.RECORD_CREATED: {DeploymentState.PROVISIONING, DeploymentState.FAILED},
    DeploymentState.PROVISIONING: TERMINAL_STATES,
}

# A record in any other status still owns a live instance
INACTIVE_STATUSES = frozenset({ServerStatus.STOPPED, ServerStatus.ERROR})


class TransitionError(Exception):
    def __init__(self, from_state: DeploymentState, to_state: DeploymentState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Cannot transition from {from_state.value} to {to_state.value}")


@dataclass
class DeploymentAttempt:
    """Tracks one deploy() call through the state machine"""

    owner: str
    config: ServerConfig
    state: DeploymentState = DeploymentState.REQUESTED
    history: List[Tuple[DeploymentState, DeploymentState]] = field(default_factory=list)
    server_id: Optional[str] = None
    deployment_id: Optional[int] = None

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.owner, self.config.name)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, to_state: DeploymentState) -> None:
        if to_state not in TRANSITIONS.get(self.state, ()):
            raise TransitionError(self.state, to_state)
        self.history.append((self.state, to_state))
        logger.debug(f"Deployment {self.owner}/{self.config.name}: {self.state.value} -> {to_state.value}")
        self.state = to_state


def _terminal_state_for(result: DeploymentResult) -> DeploymentState:
    if not result.success:
        return DeploymentState.FAILED
    if result.status == DeploymentStatus.MANUAL_SETUP:
        return DeploymentState.MANUAL_SETUP
    return DeploymentState.RUNNING


def _record_status_for(result: DeploymentResult) -> ServerStatus:
    if not result.success:
        return ServerStatus.ERROR
    if result.status == DeploymentStatus.MANUAL_SETUP:
        return ServerStatus.MANUAL_SETUP
    return ServerStatus.RUNNING


class DeploymentOrchestrator:
    """Coordinates credentials, provider adapters and the registry"""

    def __init__(self, broker: CredentialBroker, providers: ProviderRegistry,
                 registry: ServerRegistry, github: GitHubClient,
                 deployments_repo: Optional[str] = None):
        """
        Initialize DeploymentOrchestrator

        Args:
            broker: Installation credential source
            providers: Adapter per hosting provider
            registry: Server record store
            github: GitHub API client for deployment records
            deployments_repo: "owner/repo" holding deployment records; None skips them
        """
        self.broker = broker
        self.providers = providers
        self.registry = registry
        self.github = github
        self.deployments_repo = deployments_repo

        self._in_flight: Set[Tuple[str, str]] = set()
        self._attempts: Dict[Tuple[str, str], DeploymentAttempt] = {}
        self._background: Set[asyncio.Task] = set()

    def in_flight(self, owner: str, name: str) -> bool:
        return (owner, name) in self._in_flight

    def last_attempt(self, owner: str, name: str) -> Optional[DeploymentAttempt]:
        return self._attempts.get((owner, name))

    # ==================== DEPLOY ====================

    async def deploy(self, config: ServerConfig, owner: str,
                     timeout: Optional[float] = None) -> DeploymentResult:
        """
        Deploy a new server for owner

        Args:
            config: Server configuration
            owner: Owner identity (GitHub login)
            timeout: Seconds to wait for the provider before giving up

        Returns:
            DeploymentResult; a provider that is not implemented yields
            success=False rather than an exception

        Raises:
            ValidationError: Invalid config, nothing else ran
            ConflictError: Same (owner, name) already in flight, or its server
                is still active
            AuthError: Credential failure, no record was created
            ProviderError: Provider call failed (transient or permanent)
            DeploymentTimeoutError: Provider did not answer within timeout
        """
        if not owner:
            raise ValidationError("Owner identity is required", field="owner")
        config.validate()

        attempt = DeploymentAttempt(owner=owner, config=config)
        identity = attempt.identity
        # Check-and-claim happens without awaiting, so it is atomic on the event loop
        if identity in self._in_flight:
            logger.warning(f"Rejected duplicate deployment of {config.name} for {owner}")
            raise ConflictError(f"Deployment of '{config.name}' for {owner} is already in progress")

        existing = self.registry.find_by_name(owner, config.name)
        if existing is not None and existing.status not in INACTIVE_STATUSES:
            logger.warning(f"Rejected deployment of {config.name} for {owner}: server {existing.id} is {existing.status.value}")
            raise ConflictError(
                f"Server '{config.name}' for {owner} is {existing.status.value}; stop it first"
            )

        self._in_flight.add(identity)
        self._attempts[identity] = attempt
        try:
            return await self._run(attempt, timeout)
        finally:
            self._in_flight.discard(identity)

    async def _run(self, attempt: DeploymentAttempt, timeout: Optional[float]) -> DeploymentResult:
        config, owner = attempt.config, attempt.owner
        logger.info(f"Deploying {config.name} ({config.provider.value}) for {owner}")
        adapter = self.providers.get(config.provider)

        attempt.advance(DeploymentState.AUTHENTICATING)
        try:
            credential = await self.broker.get_token()
            attempt.deployment_id = await self._create_deployment_record(credential.token, attempt)
        except (AuthError, GitHubError):
            attempt.advance(DeploymentState.FAILED)
            raise

        record = self._create_pending_record(attempt)
        attempt.server_id = record.id
        attempt.advance(DeploymentState.RECORD_CREATED)

        attempt.advance(DeploymentState.PROVISIONING)
        try:
            result = await self._provision(adapter, config, timeout)
        except DeploymentTimeoutError as e:
            e.server_id = record.id
            await self._finish_failed(attempt, credential.token, str(e))
            raise
        except ProviderError as e:
            logger.error(f"Provisioning {config.name} on {e.provider} failed ({e.kind}): {e}")
            await self._finish_failed(attempt, credential.token, str(e))
            raise
        except Exception as e:
            logger.error(f"Unexpected error provisioning {config.name}: {e}", exc_info=True)
            await self._finish_failed(attempt, credential.token, f"Unexpected provider error: {e}")
            raise

        attempt.advance(_terminal_state_for(result))
        self.registry.update_status(
            record.id,
            _record_status_for(result),
            provider_server_id=result.server_id or None,
            ip_address=result.ip_address or None,
            port=result.port or config.port,
            error_message=result.error_message,
        )
        await self._mirror_status(
            credential.token,
            attempt.deployment_id,
            "success" if result.success else "failure",
            result.error_message or f"Server {result.status.value}",
        )

        logger.info(f"Deployment of {config.name} for {owner} finished: {attempt.state.value}")
        return result

    async def _provision(self, adapter: ProviderInterface, config: ServerConfig,
                         timeout: Optional[float]) -> DeploymentResult:
        if timeout is None:
            return await adapter.provision(config)

        task = asyncio.ensure_future(adapter.provision(config))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            logger.error(f"Provisioning {config.name} exceeded {timeout:g}s")
            self._track(asyncio.ensure_future(self._compensate(adapter, config, task)))
            raise DeploymentTimeoutError(timeout) from None

    async def _compensate(self, adapter: ProviderInterface, config: ServerConfig,
                          task: asyncio.Future) -> None:
        """Terminate an instance whose provisioning finished after the deploy timed out"""
        try:
            result = await task
        except DeployError as e:
            logger.info(f"Late provisioning of {config.name} failed, nothing to clean up: {e}")
            return

        if not result.success or not result.server_id:
            return

        logger.warning(f"Terminating orphaned instance {result.server_id} for {config.name}")
        try:
            if not await adapter.terminate(result.server_id):
                logger.error(f"Could not terminate orphaned instance {result.server_id}")
        except ProviderError as e:
            logger.error(f"Compensating terminate of {result.server_id} failed: {e}")

    def _track(self, task: asyncio.Future) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_background(self) -> None:
        """Wait for compensation tasks (used on shutdown and in tests)"""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _finish_failed(self, attempt: DeploymentAttempt, token: str, message: str) -> None:
        attempt.advance(DeploymentState.FAILED)
        self.registry.update_status(attempt.server_id, ServerStatus.ERROR, error_message=message)
        await self._mirror_status(token, attempt.deployment_id, "failure", message)

    def _create_pending_record(self, attempt: DeploymentAttempt) -> ServerRecord:
        existing = self.registry.find_by_name(attempt.owner, attempt.config.name)
        if existing is not None:
            logger.info(f"Reusing server record {existing.id} for {attempt.config.name}")
            # Config is embedded per record; a re-deploy replaces it
            record = self.registry.update_status(
                existing.id,
                ServerStatus.STARTING,
                deployment_id=attempt.deployment_id,
                error_message=None,
            )
            if record.config != attempt.config:
                record = self.registry.update_config(existing.id, attempt.config)
            return record

        record = ServerRecord(
            id=f"srv_{uuid.uuid4().hex[:12]}",
            owner=attempt.owner,
            name=attempt.config.name,
            status=ServerStatus.STARTING,
            config=attempt.config,
            port=attempt.config.port,
            deployment_id=attempt.deployment_id,
        )
        return self.registry.create(record)

    # ==================== DEPLOYMENT RECORDS ====================

    async def _create_deployment_record(self, token: str, attempt: DeploymentAttempt) -> Optional[int]:
        if not self.deployments_repo:
            return None
        return await self.github.create_deployment(
            token,
            self.deployments_repo,
            environment=f"{attempt.owner}/{attempt.config.name}",
            payload={"owner": attempt.owner, "config": attempt.config.to_dict()},
            description=f"Deploy {attempt.config.name} on {attempt.config.provider.value}",
        )

    async def _mirror_status(self, token: str, deployment_id: Optional[int],
                             state: str, description: str) -> None:
        if not self.deployments_repo or deployment_id is None:
            return
        try:
            await self.github.create_deployment_status(
                token, self.deployments_repo, deployment_id, state, description
            )
        except (GitHubError, AuthError) as e:
            # The registry stays authoritative; a stale GitHub status is tolerated
            logger.warning(f"Failed to mirror deployment {deployment_id} status '{state}': {e}")

    async def _mirror_with_fresh_token(self, deployment_id: Optional[int], state: str, description: str) -> None:
        if not self.deployments_repo or deployment_id is None:
            return
        try:
            credential = await self.broker.get_token()
        except AuthError as e:
            logger.warning(f"Cannot mirror deployment {deployment_id} status '{state}': {e}")
            return
        await self._mirror_status(credential.token, deployment_id, state, description)

    # ==================== LIFECYCLE ====================

    async def stop_server(self, server_id: str) -> ServerRecord:
        """
        Stop a server at its provider

        Raises:
            NotFoundError: Unknown id, registry untouched
            ProviderError: Provider could not terminate, status unchanged
        """
        record = self.registry.get(server_id)
        adapter = self.providers.get(record.provider)
        target = record.provider_server_id or record.id

        logger.info(f"Stopping server {server_id} ({record.provider.value}:{target})")
        if not await adapter.terminate(target):
            kind = ProviderError.NOT_IMPLEMENTED if isinstance(adapter, UnimplementedProvider) else ProviderError.PERMANENT
            raise ProviderError(
                record.provider.value,
                kind,
                f"{adapter.label} could not stop server {server_id}"
            )

        record = self.registry.update_status(server_id, ServerStatus.STOPPED)
        await self._mirror_with_fresh_token(record.deployment_id, "inactive", "Server stopped")
        return record

    async def refresh_status(self, server_id: str) -> ServerRecord:
        """Ask the provider for the current status and store it"""
        record = self.registry.get(server_id)
        if not record.provider_server_id:
            return record

        adapter = self.providers.get(record.provider)
        status = await adapter.fetch_status(record.provider_server_id)
        if status is None or status == record.status:
            return record
        return self.registry.update_status(server_id, status)

    def delete_server(self, server_id: str) -> None:
        """
        Remove a stopped (or failed) server record

        Raises:
            NotFoundError: Unknown id
            ConflictError: Server still active; stop it first
        """
        record = self.registry.get(server_id)
        if record.status not in INACTIVE_STATUSES:
            raise ConflictError(f"Server {server_id} is {record.status.value}; stop it before deleting")
        self.registry.delete(server_id)

    def list_servers(self, owner: str) -> List[ServerRecord]:
        return self.registry.list_by_owner(owner)

    def get_server(self, server_id: str) -> ServerRecord:
        return self.registry.get(server_id)
