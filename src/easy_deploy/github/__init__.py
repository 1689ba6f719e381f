"""GitHub API helpers."""

from .client import DeployKeyResult, GitHubClient, GitHubListResult

__all__ = ["DeployKeyResult", "GitHubClient", "GitHubListResult"]
