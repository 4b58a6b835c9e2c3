"""
GitHub webhook routing

Turns GitHub events into deployments:

- push to the trigger repository -> auto-deploy with a fixed config
- issues opened with the "[SERVER]" title prefix -> deploy from the issue body,
  result posted back as an issue comment
- deployment -> handed to an optional listener

dispatch() never raises; every failure becomes an "error" outcome.
"""

import asyncio
import hashlib
import hmac
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

import yaml

from .credentials import CredentialBroker
from .exceptions import AuthError, DeployError, PayloadError, ValidationError
from .integrations.github import GitHubClient, GitHubError
from .job_manager import Job, JobManager
from .models import DeploymentResult, HostingProvider, ServerConfig
from .orchestrator import DeploymentOrchestrator

logger = logging.getLogger(__name__)

AUTO_DEPLOY_OWNER = "auto-deploy"
AUTO_DEPLOY_NAME = "Auto-deployed Server"
AUTO_DEPLOY_GAME_TYPE = "forsaken-rpg"
AUTO_DEPLOY_MAX_PLAYERS = 100
AUTO_DEPLOY_REGION = "us-central-1"

# Defaults for fields an issue body leaves out
ISSUE_DEFAULTS = {
    "game_type": "forsaken-rpg",
    "max_players": 50,
    "region": "us-east-1",
}

_YAML_FENCE = re.compile(r"```(?:ya?ml)?\s*\n(.*?)```", re.DOTALL)


class WebhookAction:
    QUEUED = "queued"
    IGNORED = "ignored"
    FORWARDED = "forwarded"
    ERROR = "error"


@dataclass(frozen=True)
class WebhookOutcome:
    """What dispatch() did with an event"""

    event_type: str
    action: str
    detail: str
    job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "action": self.action,
            "detail": self.detail,
            "job_id": self.job_id,
        }


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check an X-Hub-Signature-256 header (`sha256=<hex>`) against body"""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256="):])


def parse_payload(payload: Union[bytes, str, Dict[str, Any]]) -> Dict[str, Any]:
    """Decode a raw webhook body into a dict"""
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise PayloadError(f"Payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise PayloadError("Payload must be a JSON object")
    return payload


def require(payload: Dict[str, Any], *path: str) -> Any:
    """
    Read a nested field, raising PayloadError if any level is missing

    A present key with a null value is returned as None.
    """
    current: Any = payload
    for i, key in enumerate(path):
        if not isinstance(current, dict) or key not in current:
            raise PayloadError(f"Payload missing required field '{'.'.join(path[:i + 1])}'")
        current = current[key]
    return current


def auto_deploy_config(provider: HostingProvider) -> ServerConfig:
    return ServerConfig(
        name=AUTO_DEPLOY_NAME,
        game_type=AUTO_DEPLOY_GAME_TYPE,
        max_players=AUTO_DEPLOY_MAX_PLAYERS,
        region=AUTO_DEPLOY_REGION,
        provider=provider,
    )


def _issue_fields(body: Optional[str]) -> Dict[str, Any]:
    if not body or not body.strip():
        return {}

    match = _YAML_FENCE.search(body)
    text = match.group(1) if match else body
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError(f"Issue body is not valid YAML: {e}") from e

    # Free-form prose parses as a plain string; treat it as "no settings"
    if not isinstance(data, dict):
        return {}
    return {
        str(key).strip().lower().replace(" ", "_").replace("-", "_"): value
        for key, value in data.items()
        if value is not None
    }


def parse_issue_config(title: str, body: Optional[str], prefix: str,
                       default_provider: HostingProvider) -> ServerConfig:
    """
    Build a ServerConfig from an issue

    The server name is the title without the prefix. The body may hold YAML
    (optionally in a ```yaml fence) with any ServerConfig fields.

    Raises:
        ValidationError: Body is not YAML or the resulting config is invalid
    """
    data: Dict[str, Any] = dict(ISSUE_DEFAULTS)
    data["name"] = title[len(prefix):].strip()
    data["provider"] = default_provider.value
    data.update(_issue_fields(body))
    return ServerConfig.from_dict(data)


def format_result_comment(config: ServerConfig, result: DeploymentResult) -> str:
    """Markdown summary of a deployment for an issue comment"""
    if not result.success:
        return (
            f"### ❌ Deployment of `{config.name}` failed\n\n"
            f"{result.error_message}\n"
        )

    lines = [
        f"### ✅ Server `{config.name}` deployed",
        "",
        "| Field | Value |",
        "| --- | --- |",
        f"| Server ID | `{result.server_id}` |",
        f"| IP address | `{result.ip_address}` |",
        f"| Port | `{result.port}` |",
        f"| Status | `{result.status.value}` |",
    ]
    if result.domain:
        lines.append(f"| Domain | `{result.domain}` |")

    if result.setup_script:
        lines += [
            "",
            "<details><summary>Setup script</summary>",
            "",
            "```bash",
            result.setup_script.rstrip(),
            "```",
            "</details>",
        ]
    return "\n".join(lines) + "\n"


def format_error_comment(config: ServerConfig, error: Exception) -> str:
    return f"### ❌ Deployment of `{config.name}` failed\n\n{error}\n"


class WebhookRouter:
    """Dispatches GitHub webhook events"""

    def __init__(self, orchestrator: DeploymentOrchestrator, job_manager: JobManager,
                 github: GitHubClient, broker: CredentialBroker, settings,
                 deployment_listener: Optional[Callable[[Dict[str, Any]], Any]] = None):
        """
        Initialize WebhookRouter

        Args:
            orchestrator: Runs the deployments
            job_manager: Background execution of queued deployments
            github: Client used for issue comments
            broker: Installation tokens for issue comments
            settings: Settings (trigger repository, issue prefix, defaults)
            deployment_listener: Receives raw `deployment` payloads (sync or async)
        """
        self.orchestrator = orchestrator
        self.job_manager = job_manager
        self.github = github
        self.broker = broker
        self.settings = settings
        self.deployment_listener = deployment_listener

        self._handlers = {
            "push": self._handle_push,
            "issues": self._handle_issues,
            "deployment": self._handle_deployment,
        }

    async def dispatch(self, event_type: str,
                       payload: Union[bytes, str, Dict[str, Any]]) -> WebhookOutcome:
        """
        Handle one webhook delivery

        Args:
            event_type: Value of the X-GitHub-Event header
            payload: Raw body or decoded JSON

        Returns:
            WebhookOutcome describing what happened
        """
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Ignoring unsupported webhook event '{event_type}'")
            return WebhookOutcome(event_type, WebhookAction.IGNORED, f"Unsupported event '{event_type}'")

        try:
            data = parse_payload(payload)
            return await handler(data)
        except (PayloadError, ValidationError) as e:
            logger.warning(f"Rejected {event_type} webhook: {e}")
            return WebhookOutcome(event_type, WebhookAction.ERROR, str(e))
        except Exception as e:
            logger.error(f"Error handling {event_type} webhook: {e}", exc_info=True)
            return WebhookOutcome(event_type, WebhookAction.ERROR, f"Internal error: {e}")

    # ==================== HANDLERS ====================

    async def _handle_push(self, payload: Dict[str, Any]) -> WebhookOutcome:
        repository = require(payload, "repository", "name")
        if repository != self.settings.trigger_repository:
            logger.debug(f"Push to {repository} is not the trigger repository")
            return WebhookOutcome("push", WebhookAction.IGNORED, f"Repository '{repository}' does not trigger deployments")

        config = auto_deploy_config(self.settings.default_provider)
        logger.info(f"Push to {repository}, queueing auto-deploy on {config.provider.value}")

        async def run(job: Job) -> Dict[str, Any]:
            job.update_progress(10, f"Deploying {config.name}")
            result = await self.orchestrator.deploy(config, AUTO_DEPLOY_OWNER, timeout=self.settings.deploy_timeout)
            job.update_progress(100, f"Deployment finished: {result.status.value}")
            return result.to_dict()

        job = self.job_manager.submit(
            "auto_deploy",
            {"repository": repository, "owner": AUTO_DEPLOY_OWNER, "config": config.to_dict()},
            run,
        )
        return WebhookOutcome("push", WebhookAction.QUEUED, f"Auto-deploy queued for {repository}", job.job_id)

    async def _handle_issues(self, payload: Dict[str, Any]) -> WebhookOutcome:
        action = require(payload, "action")
        title = require(payload, "issue", "title")
        body = require(payload, "issue", "body")

        if action != "opened":
            return WebhookOutcome("issues", WebhookAction.IGNORED, f"Issue action '{action}' ignored")
        if not isinstance(title, str) or not title.startswith(self.settings.issue_prefix):
            return WebhookOutcome("issues", WebhookAction.IGNORED, "Issue is not a server request")

        config = parse_issue_config(title, body, self.settings.issue_prefix, self.settings.default_provider)
        owner = self._issue_owner(payload)
        repo = (payload.get("repository") or {}).get("full_name")
        number = payload["issue"].get("number")
        logger.info(f"Issue #{number} requests server {config.name} for {owner}")

        async def run(job: Job) -> Dict[str, Any]:
            job.update_progress(10, f"Deploying {config.name}")
            try:
                result = await self.orchestrator.deploy(config, owner, timeout=self.settings.deploy_timeout)
            except DeployError as e:
                await self._comment(repo, number, format_error_comment(config, e))
                raise
            await self._comment(repo, number, format_result_comment(config, result))
            job.update_progress(100, f"Deployment finished: {result.status.value}")
            return result.to_dict()

        job = self.job_manager.submit(
            "issue_deploy",
            {"issue": number, "repository": repo, "owner": owner, "config": config.to_dict()},
            run,
        )
        return WebhookOutcome("issues", WebhookAction.QUEUED, f"Deployment of '{config.name}' queued", job.job_id)

    async def _handle_deployment(self, payload: Dict[str, Any]) -> WebhookOutcome:
        if self.deployment_listener is not None:
            outcome = self.deployment_listener(payload)
            if asyncio.iscoroutine(outcome):
                await outcome
        return WebhookOutcome("deployment", WebhookAction.FORWARDED, "Deployment event acknowledged")

    # ==================== HELPERS ====================

    @staticmethod
    def _issue_owner(payload: Dict[str, Any]) -> str:
        for path in (("sender", "login"), ("issue", "user", "login")):
            try:
                login = require(payload, *path)
            except PayloadError:
                continue
            if login:
                return login
        raise PayloadError("Payload missing required field 'sender.login'")

    async def _comment(self, repo: Optional[str], number: Optional[int], body: str) -> None:
        if not repo or number is None:
            logger.warning("Issue has no repository or number, skipping result comment")
            return
        try:
            credential = await self.broker.get_token()
            await self.github.create_issue_comment(credential.token, repo, number, body)
            logger.info(f"Posted deployment result to {repo}#{number}")
        except (AuthError, GitHubError) as e:
            logger.warning(f"Failed to comment on {repo}#{number}: {e}")
