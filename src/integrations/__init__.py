"""External platform integrations"""

from .github import GitHubClient, GitHubError, GitHubTransportError

__all__ = ["GitHubClient", "GitHubError", "GitHubTransportError"]
