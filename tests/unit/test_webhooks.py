"""
Unit tests for WebhookRouter

Tests for:
- push: trigger repository vs other repositories
- issues: "[SERVER]" requests parsed into configs, results commented back
- deployment: forwarded to the listener
- malformed payloads never raise
- HMAC signature verification
"""

import pytest
import hashlib
import hmac
import json
from dataclasses import replace
from unittest.mock import AsyncMock, Mock

from src.exceptions import ConflictError, ValidationError
from src.integrations.github import GitHubTransportError
from src.job_manager import JobManager, JobStatus
from src.models import DeploymentResult, DeploymentStatus, HostingProvider
from src.webhooks import (
    AUTO_DEPLOY_OWNER,
    WebhookAction,
    WebhookRouter,
    parse_issue_config,
    verify_signature,
)


@pytest.fixture
def orchestrator_mock():
    orchestrator = Mock()
    orchestrator.deploy = AsyncMock(return_value=DeploymentResult(
        success=True, server_id="9001", ip_address="203.0.113.10",
        port=25565, status=DeploymentStatus.PROVISIONING,
    ))
    return orchestrator


@pytest.fixture
def job_manager():
    return JobManager()


@pytest.fixture
def router(orchestrator_mock, job_manager, github_mock, broker_mock, settings):
    return WebhookRouter(
        orchestrator=orchestrator_mock,
        job_manager=job_manager,
        github=github_mock,
        broker=broker_mock,
        settings=settings,
    )


def _issue_payload(title="[SERVER] arena", body="", action="opened"):
    return {
        "action": action,
        "issue": {"number": 7, "title": title, "body": body, "user": {"login": "issue-author"}},
        "repository": {"name": "servers", "full_name": "artemis/servers"},
        "sender": {"login": "alice"},
    }


class TestPushEvents:
    """Test push handling"""

    @pytest.mark.asyncio
    async def test_push_to_other_repository_ignored(self, router, orchestrator_mock, job_manager):
        # Act
        outcome = await router.dispatch("push", {"repository": {"name": "website"}})
        await job_manager.wait_all()

        # Assert
        assert outcome.action == WebhookAction.IGNORED
        orchestrator_mock.deploy.assert_not_awaited()
        assert job_manager.list_jobs() == []

    @pytest.mark.asyncio
    async def test_push_to_trigger_repository_deploys_once(self, router, orchestrator_mock, job_manager):
        # Act
        outcome = await router.dispatch("push", {"repository": {"name": "artemis-game-server"}})
        await job_manager.wait_all()

        # Assert
        assert outcome.action == WebhookAction.QUEUED
        orchestrator_mock.deploy.assert_awaited_once()

        config, owner = orchestrator_mock.deploy.call_args.args
        assert owner == AUTO_DEPLOY_OWNER
        assert config.name == "Auto-deployed Server"
        assert config.game_type == "forsaken-rpg"
        assert config.max_players == 100
        assert config.region == "us-central-1"
        assert config.provider == HostingProvider.DIGITALOCEAN

        job = job_manager.get_job(outcome.job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.result["server_id"] == "9001"

    @pytest.mark.asyncio
    async def test_push_uses_configured_default_provider(self, router, orchestrator_mock, job_manager, settings):
        router.settings = replace(settings, default_provider=HostingProvider.SELF_HOSTED)

        await router.dispatch("push", {"repository": {"name": "artemis-game-server"}})
        await job_manager.wait_all()

        config = orchestrator_mock.deploy.call_args.args[0]
        assert config.provider == HostingProvider.SELF_HOSTED

    @pytest.mark.asyncio
    async def test_push_accepts_raw_json_body(self, router, orchestrator_mock, job_manager):
        body = json.dumps({"repository": {"name": "artemis-game-server"}}).encode()

        outcome = await router.dispatch("push", body)
        await job_manager.wait_all()

        assert outcome.action == WebhookAction.QUEUED
        orchestrator_mock.deploy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deploy_conflict_marks_job_failed(self, router, orchestrator_mock, job_manager):
        orchestrator_mock.deploy.side_effect = ConflictError("already in progress")

        outcome = await router.dispatch("push", {"repository": {"name": "artemis-game-server"}})
        await job_manager.wait_all()

        job = job_manager.get_job(outcome.job_id)
        assert job.status == JobStatus.FAILED
        assert "already in progress" in job.error


class TestMalformedPayloads:
    """dispatch() reports errors instead of raising"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type,payload", [
        ("push", {}),
        ("push", {"repository": "artemis-game-server"}),
        ("push", b"{not json"),
        ("push", b"[1, 2, 3]"),
        ("issues", {"action": "opened"}),
        ("issues", {"action": "opened", "issue": {"title": "[SERVER] x"}}),
    ])
    async def test_malformed_payload_is_error_outcome(self, router, orchestrator_mock, event_type, payload):
        # Act
        outcome = await router.dispatch(event_type, payload)

        # Assert
        assert outcome.action == WebhookAction.ERROR
        assert outcome.detail
        orchestrator_mock.deploy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_event_ignored(self, router):
        outcome = await router.dispatch("ping", {"zen": "Keep it logically awesome."})

        assert outcome.action == WebhookAction.IGNORED


class TestIssueEvents:
    """Test issues handling"""

    @pytest.mark.asyncio
    async def test_issue_request_deploys_and_comments(self, router, orchestrator_mock, job_manager, github_mock):
        # Arrange
        body = "Please spin this up\n\n```yaml\nmax_players: 32\nregion: eu-west-1\nport: 7777\n```\n"

        # Act
        outcome = await router.dispatch("issues", _issue_payload(body=body))
        await job_manager.wait_all()

        # Assert
        assert outcome.action == WebhookAction.QUEUED
        config, owner = orchestrator_mock.deploy.call_args.args
        assert owner == "alice"
        assert config.name == "arena"
        assert config.max_players == 32
        assert config.region == "eu-west-1"
        assert config.port == 7777

        github_mock.create_issue_comment.assert_awaited_once()
        token, repo, number, comment = github_mock.create_issue_comment.call_args.args
        assert (token, repo, number) == ("ghs_test_token", "artemis/servers", 7)
        assert "203.0.113.10" in comment

    @pytest.mark.asyncio
    async def test_issue_failure_is_commented(self, router, orchestrator_mock, job_manager, github_mock):
        orchestrator_mock.deploy.return_value = DeploymentResult.failure("AWS deployment not implemented yet")

        await router.dispatch("issues", _issue_payload(body="provider: aws"))
        await job_manager.wait_all()

        comment = github_mock.create_issue_comment.call_args.args[3]
        assert "AWS deployment not implemented yet" in comment

    @pytest.mark.asyncio
    async def test_unreachable_github_comment_keeps_job_completed(self, router, orchestrator_mock,
                                                                  job_manager, github_mock):
        # Arrange
        github_mock.create_issue_comment.side_effect = GitHubTransportError("GitHub API unreachable")

        # Act
        outcome = await router.dispatch("issues", _issue_payload())
        await job_manager.wait_all()

        # Assert
        job = job_manager.get_job(outcome.job_id)
        assert job.status == JobStatus.COMPLETED
        orchestrator_mock.deploy.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_issue_without_prefix_ignored(self, router, orchestrator_mock):
        outcome = await router.dispatch("issues", _issue_payload(title="Bug: crash on login"))

        assert outcome.action == WebhookAction.IGNORED
        orchestrator_mock.deploy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_issue_other_action_ignored(self, router, orchestrator_mock):
        outcome = await router.dispatch("issues", _issue_payload(action="closed"))

        assert outcome.action == WebhookAction.IGNORED
        orchestrator_mock.deploy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_issue_with_invalid_config_is_error(self, router, orchestrator_mock):
        outcome = await router.dispatch("issues", _issue_payload(body="provider: hetzner"))

        assert outcome.action == WebhookAction.ERROR
        assert "provider" in outcome.detail
        orchestrator_mock.deploy.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_issue_owner_falls_back_to_author(self, router, orchestrator_mock, job_manager):
        payload = _issue_payload()
        del payload["sender"]

        await router.dispatch("issues", payload)
        await job_manager.wait_all()

        assert orchestrator_mock.deploy.call_args.args[1] == "issue-author"


class TestDeploymentEvents:
    @pytest.mark.asyncio
    async def test_forwarded_to_listener(self, router):
        # Arrange
        listener = AsyncMock()
        router.deployment_listener = listener
        payload = {"deployment": {"id": 1}}

        # Act
        outcome = await router.dispatch("deployment", payload)

        # Assert
        assert outcome.action == WebhookAction.FORWARDED
        listener.assert_awaited_once_with(payload)

    @pytest.mark.asyncio
    async def test_acknowledged_without_listener(self, router):
        outcome = await router.dispatch("deployment", {"deployment": {}})
        assert outcome.action == WebhookAction.FORWARDED

    @pytest.mark.asyncio
    async def test_listener_failure_is_error_outcome(self, router):
        router.deployment_listener = Mock(side_effect=RuntimeError("listener down"))

        outcome = await router.dispatch("deployment", {"deployment": {}})

        assert outcome.action == WebhookAction.ERROR


class TestParseIssueConfig:
    """Test issue title/body parsing"""

    def test_defaults_when_body_empty(self):
        config = parse_issue_config("[SERVER] My Server", None, "[SERVER]", HostingProvider.DIGITALOCEAN)

        assert config.name == "My Server"
        assert config.game_type == "forsaken-rpg"
        assert config.max_players == 50
        assert config.region == "us-east-1"
        assert config.provider == HostingProvider.DIGITALOCEAN

    def test_plain_yaml_body(self):
        body = "game-type: space-arena\nmax players: 8\nprovider: self_hosted\ndomain: play.example.com"

        config = parse_issue_config("[SERVER] x", body, "[SERVER]", HostingProvider.DIGITALOCEAN)

        assert config.game_type == "space-arena"
        assert config.max_players == 8
        assert config.provider == HostingProvider.SELF_HOSTED
        assert config.domain == "play.example.com"

    def test_prose_body_uses_defaults(self):
        config = parse_issue_config("[SERVER] x", "Just a normal server please", "[SERVER]",
                                    HostingProvider.DIGITALOCEAN)

        assert config.max_players == 50

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            parse_issue_config("[SERVER]   ", "", "[SERVER]", HostingProvider.DIGITALOCEAN)

    def test_broken_yaml_rejected(self):
        with pytest.raises(ValidationError):
            parse_issue_config("[SERVER] x", "max_players: [1, 2", "[SERVER]", HostingProvider.DIGITALOCEAN)


class TestVerifySignature:
    def test_valid_signature(self):
        body = b'{"zen": "hi"}'
        digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

        assert verify_signature("s3cret", body, f"sha256={digest}") is True

    def test_invalid_signature(self):
        assert verify_signature("s3cret", b"{}", "sha256=deadbeef") is False

    def test_missing_signature(self):
        assert verify_signature("s3cret", b"{}", None) is False
