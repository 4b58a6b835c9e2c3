"""GitHub App credential broker"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
import jwt

from .exceptions import AuthError
from .integrations.github import GitHubClient, GitHubError
from .models import Credential, utcnow

logger = logging.getLogger(__name__)

# GitHub rejects app assertions valid for more than 10 minutes
ASSERTION_LIFETIME = timedelta(minutes=9)
# Backdate iat to tolerate clock drift between us and GitHub
ASSERTION_BACKDATE = timedelta(seconds=60)


class CredentialBroker:
    """
    Mints and caches the installation access token

    The cached credential is returned while it has more than ``skew`` left
    before expiry. Refreshes are single-flight: concurrent callers on a cache
    miss wait for the one exchange in progress instead of starting their own.
    A failed refresh leaves the cache as it was.
    """

    def __init__(self, app_id: Optional[str], private_key: Optional[str],
                 installation_id: Optional[str], github: GitHubClient,
                 algorithm: str = "RS256", skew_seconds: int = 60,
                 clock: Callable[[], datetime] = utcnow):
        self.app_id = app_id
        self.private_key = private_key
        self.installation_id = installation_id
        self.github = github
        self.algorithm = algorithm
        self.skew = timedelta(seconds=skew_seconds)
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings, github: GitHubClient) -> "CredentialBroker":
        return cls(
            app_id=settings.github_app_id,
            private_key=settings.github_private_key,
            installation_id=settings.github_installation_id,
            github=github,
            algorithm=settings.jwt_algorithm,
            skew_seconds=settings.token_refresh_skew,
        )

    @property
    def cached(self) -> Optional[Credential]:
        return self._credential

    def _fresh(self) -> Optional[Credential]:
        credential = self._credential
        if credential is not None and credential.is_fresh(self._clock(), self.skew):
            return credential
        return None

    async def get_token(self) -> Credential:
        """
        Get a valid installation credential

        Returns:
            Cached or newly exchanged Credential

        Raises:
            AuthError: If signing the assertion or the exchange fails
        """
        credential = self._fresh()
        if credential is not None:
            return credential

        async with self._lock:
            # Another caller may have refreshed while we waited
            credential = self._fresh()
            if credential is not None:
                return credential

            assertion = self.build_assertion()
            credential = await self._exchange(assertion)
            self._credential = credential
            logger.info(f"Installation token refreshed, expires at {credential.expires_at.isoformat()}")
            return credential

    def invalidate(self) -> None:
        self._credential = None

    def build_assertion(self) -> str:
        """
        Sign the time-bounded app assertion

        Raises:
            AuthError: stage "assertion"
        """
        if not self.app_id or not self.private_key:
            raise AuthError(AuthError.ASSERTION, ValueError("GitHub App id or private key not configured"))

        now = self._clock()
        claims = {
            "iat": int((now - ASSERTION_BACKDATE).timestamp()),
            "exp": int((now + ASSERTION_LIFETIME).timestamp()),
            "iss": self.app_id,
        }
        try:
            return jwt.encode(claims, self.private_key, algorithm=self.algorithm)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            logger.error(f"Failed to sign app assertion: {e}")
            raise AuthError(AuthError.ASSERTION, e) from e

    async def _exchange(self, assertion: str) -> Credential:
        if not self.installation_id:
            raise AuthError(AuthError.EXCHANGE, ValueError("GitHub App installation id not configured"))

        issued_at = self._clock()
        try:
            data = await self.github.create_installation_token(self.installation_id, assertion)
            raw_expiry = data["expires_at"]
            if not isinstance(raw_expiry, str):
                raise ValueError(f"expires_at is not a timestamp: {raw_expiry!r}")
            expires_at = datetime.fromisoformat(raw_expiry.replace("Z", "+00:00"))
        except (GitHubError, httpx.HTTPError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Installation token exchange failed: {e}")
            raise AuthError(AuthError.EXCHANGE, e) from e

        return Credential(token=data["token"], issued_at=issued_at, expires_at=expires_at)
