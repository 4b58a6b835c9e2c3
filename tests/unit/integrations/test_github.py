"""
Unit tests for GitHub API client
"""
import pytest
import httpx
from unittest.mock import Mock, AsyncMock, patch
from src.integrations.github import GitHubClient, GitHubError, GitHubServerError, GitHubTransportError


def _response(status_code, json_data=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data if json_data is not None else {}
    response.text = text
    response.content = b"{}" if json_data is not None else b""
    return response


class TestGitHubClient:
    """Test GitHub API client"""

    @pytest.fixture
    def client(self):
        """Create GitHub client instance"""
        return GitHubClient(api_url="https://api.github.com/")

    def test_api_url_normalized(self, client):
        assert client.api_url == "https://api.github.com"

    @pytest.mark.asyncio
    async def test_installation_token_uses_bearer_assertion(self, client):
        """Token exchange authenticates with the app JWT"""
        # Setup mock directly on client's _request method
        client._request = AsyncMock(return_value=_response(201, {
            "token": "ghs_abc", "expires_at": "2030-01-01T00:00:00Z"
        }))

        # Test
        data = await client.create_installation_token("67890", "header.claims.sig")

        # Verify
        assert data["token"] == "ghs_abc"
        method, path = client._request.call_args.args
        assert (method, path) == ("POST", "/app/installations/67890/access_tokens")
        headers = client._request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer header.claims.sig"
        assert headers["Accept"] == "application/vnd.github+json"

    @pytest.mark.asyncio
    async def test_installation_token_rejected(self, client):
        client._request = AsyncMock(return_value=_response(401, text="Bad credentials"))

        with pytest.raises(GitHubError) as exc_info:
            await client.create_installation_token("67890", "jwt")

        assert exc_info.value.status_code == 401
        assert "Bad credentials" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_installation_token_incomplete_response(self, client):
        client._request = AsyncMock(return_value=_response(201, {"token": "ghs_abc"}))

        with pytest.raises(GitHubError, match="expires_at"):
            await client.create_installation_token("67890", "jwt")

    @pytest.mark.asyncio
    async def test_create_deployment(self, client):
        # Setup
        client._request = AsyncMock(return_value=_response(201, {"id": 4242}))

        # Test
        deployment_id = await client.create_deployment(
            "ghs_abc", "artemis/deployments", "game-server-alice-arena",
            payload={"server_id": "srv_1"}, description="Deploy arena"
        )

        # Verify
        assert deployment_id == 4242
        method, path = client._request.call_args.args
        assert (method, path) == ("POST", "/repos/artemis/deployments/deployments")
        body = client._request.call_args.kwargs["json"]
        assert body["environment"] == "game-server-alice-arena"
        assert body["payload"] == {"server_id": "srv_1"}
        assert body["required_contexts"] == []
        assert client._request.call_args.kwargs["headers"]["Authorization"] == "token ghs_abc"

    @pytest.mark.asyncio
    async def test_create_deployment_status_truncates_description(self, client):
        client._request = AsyncMock(return_value=_response(201, {"state": "success"}))

        await client.create_deployment_status(
            "ghs_abc", "artemis/deployments", 4242, "success", "x" * 500,
            environment_url="http://203.0.113.10:25565"
        )

        body = client._request.call_args.kwargs["json"]
        assert body["state"] == "success"
        assert len(body["description"]) == 140
        assert body["environment_url"] == "http://203.0.113.10:25565"

    @pytest.mark.asyncio
    async def test_create_issue_comment(self, client):
        client._request = AsyncMock(return_value=_response(201, {"id": 1}))

        await client.create_issue_comment("ghs_abc", "artemis/servers", 7, "Deployed")

        method, path = client._request.call_args.args
        assert (method, path) == ("POST", "/repos/artemis/servers/issues/7/comments")
        assert client._request.call_args.kwargs["json"] == {"body": "Deployed"}

    @pytest.mark.asyncio
    async def test_create_issue_comment_failure(self, client):
        client._request = AsyncMock(return_value=_response(404, text="Not Found"))

        with pytest.raises(GitHubError) as exc_info:
            await client.create_issue_comment("ghs_abc", "artemis/servers", 7, "Deployed")

        assert exc_info.value.status_code == 404


class TestRequestRetries:
    """Test _request against a patched httpx.AsyncClient"""

    @pytest.fixture
    def http(self):
        http = AsyncMock()
        http.__aenter__.return_value = http
        http.__aexit__.return_value = False
        with patch('src.integrations.github.httpx.AsyncClient', Mock(return_value=http)):
            yield http

    @pytest.mark.asyncio
    async def test_server_error_retried(self, http):
        # Setup
        http.request.side_effect = [_response(502), _response(201, {"id": 1})]
        client = GitHubClient()

        # Test
        response = await client._request("POST", "/repos/a/b/issues/1/comments")

        # Verify
        assert response.status_code == 201
        assert http.request.await_count == 2
        assert http.request.call_args.args == ("POST", "https://api.github.com/repos/a/b/issues/1/comments")

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, http):
        http.request.return_value = _response(422)
        client = GitHubClient()

        response = await client._request("POST", "/repos/a/b/deployments")

        assert response.status_code == 422
        assert http.request.await_count == 1

    @pytest.mark.asyncio
    async def test_transport_error_wrapped_after_attempts(self, http):
        http.request.side_effect = httpx.ConnectError("connection refused")
        client = GitHubClient()

        with pytest.raises(GitHubTransportError) as exc_info:
            await client._request("GET", "/rate_limit")

        assert http.request.await_count == 3
        assert isinstance(exc_info.value, GitHubError)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_transport_error_surfaces_from_public_calls(self, http):
        http.request.side_effect = httpx.ReadTimeout("timed out")
        client = GitHubClient()

        with pytest.raises(GitHubError):
            await client.create_deployment_status("tok", "artemis/deployments", 42, "success")

    def test_server_error_is_github_error(self):
        assert issubclass(GitHubServerError, GitHubError)
