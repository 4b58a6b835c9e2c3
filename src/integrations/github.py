"""
GitHub REST API client

Covers the calls the deployment engine makes on behalf of the GitHub App:
- installation access tokens (authenticated with the app assertion)
- deployment records and their statuses
- issue comments
"""

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class GitHubError(Exception):
    """GitHub API request failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class GitHubServerError(GitHubError):
    """5xx from GitHub, safe to retry"""


class GitHubTransportError(GitHubError):
    """GitHub API unreachable after retries"""


class GitHubClient:
    """Async GitHub API client"""

    def __init__(self, api_url: str = "https://api.github.com", timeout: float = 30.0):
        """
        Initialize GitHub client

        Args:
            api_url: API base URL (GitHub Enterprise installs use their own)
            timeout: Request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def _get_headers(self, token: str, scheme: str = "token") -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"{scheme} {token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Make an HTTP request to the GitHub API

        Transport errors and 5xx responses are retried with backoff. A
        transport failure that outlasts the retries surfaces as
        GitHubTransportError.
        """
        try:
            return await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"GitHub API {method} {path} unreachable: {e}")
            raise GitHubTransportError(f"GitHub API {method} {path} unreachable: {e}") from e

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, GitHubServerError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        reraise=True,
    )
    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.api_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(method, url, **kwargs)

        if response.status_code >= 500:
            raise GitHubServerError(
                f"GitHub API {method} {path} failed: {response.status_code}",
                status_code=response.status_code
            )
        return response

    def _check(self, response: httpx.Response, action: str, expected: tuple = (200, 201)) -> Dict[str, Any]:
        if response.status_code not in expected:
            raise GitHubError(
                f"{action} failed: {response.status_code} - {response.text}",
                status_code=response.status_code
            )
        return response.json() if response.content else {}

    async def create_installation_token(self, installation_id: str, assertion: str) -> Dict[str, Any]:
        """
        Exchange an app assertion (JWT) for an installation access token

        Args:
            installation_id: GitHub App installation id
            assertion: Signed app JWT

        Returns:
            Response with "token" and "expires_at" (ISO 8601)
        """
        response = await self._request(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            headers=self._get_headers(assertion, scheme="Bearer")
        )
        data = self._check(response, "Installation token exchange")

        if "token" not in data or "expires_at" not in data:
            raise GitHubError("Installation token response missing token or expires_at")

        logger.debug(f"Obtained installation token expiring at {data['expires_at']}")
        return data

    async def create_deployment(self, token: str, repo: str, environment: str,
                                payload: Optional[Dict[str, Any]] = None,
                                ref: str = "main", description: str = "") -> int:
        """
        Create a deployment record

        Returns:
            Deployment id
        """
        body = {
            "ref": ref,
            "environment": environment,
            "payload": payload or {},
            "description": description,
            "auto_merge": False,
            "required_contexts": [],
            "transient_environment": True,
        }
        response = await self._request(
            "POST",
            f"/repos/{repo}/deployments",
            headers=self._get_headers(token),
            json=body
        )
        data = self._check(response, "Create deployment", expected=(201,))
        logger.info(f"Created GitHub deployment {data.get('id')} for {environment}")
        return data["id"]

    async def create_deployment_status(self, token: str, repo: str, deployment_id: int,
                                       state: str, description: str = "",
                                       environment_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Record a status on an existing deployment

        Args:
            state: One of error, failure, inactive, in_progress, queued, pending, success
        """
        body: Dict[str, Any] = {"state": state, "description": description[:140]}
        if environment_url:
            body["environment_url"] = environment_url

        response = await self._request(
            "POST",
            f"/repos/{repo}/deployments/{deployment_id}/statuses",
            headers=self._get_headers(token),
            json=body
        )
        return self._check(response, "Create deployment status", expected=(201,))

    async def create_issue_comment(self, token: str, repo: str, issue_number: int, body: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"/repos/{repo}/issues/{issue_number}/comments",
            headers=self._get_headers(token),
            json={"body": body}
        )
        return self._check(response, "Create issue comment", expected=(201,))
