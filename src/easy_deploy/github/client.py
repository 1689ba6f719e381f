"""Minimal GitHub REST client for deploy keys, branches and repositories."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import requests

if TYPE_CHECKING:
    from ..config import GitHubConfig

logger = logging.getLogger(__name__)


@dataclass
class DeployKeyResult:
    success: bool
    message: str
    key_id: Optional[int] = None


@dataclass
class GitHubListResult:
    success: bool
    message: str = ""
    items: List[Dict[str, Any]] = field(default_factory=list)


class GitHubClient:
    """Thin wrapper over the handful of endpoints the deployer needs.

    Every call returns a result object instead of raising, so callers can
    surface GitHub's own message to the operator.
    """

    def __init__(self, config: Optional["GitHubConfig"] = None, session: Optional[requests.Session] = None):
        self.base_url = (config.api_url if config else "https://api.github.com").rstrip("/")
        self.timeout = config.timeout if config else 30
        self.session = session or requests.Session()

        proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY")
        if proxy and session is None:
            self.session.proxies = {"http": proxy, "https": proxy}

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
        }

    @staticmethod
    def _error_message(response: requests.Response, not_found: str) -> str:
        if response.status_code == 401:
            return "Invalid GitHub Token"
        if response.status_code == 404:
            return not_found
        try:
            detail = response.json().get("message")
        except ValueError:
            detail = None
        return f"GitHub API Error: {detail or response.reason}"

    def add_deploy_key(
        self,
        token: str,
        owner: str,
        repo: str,
        public_key: str,
        title: str,
        read_only: bool = True,
    ) -> DeployKeyResult:
        if not token:
            return DeployKeyResult(success=False, message="No token provided")
        url = f"{self.base_url}/repos/{owner}/{repo}/keys"
        body = {"title": title, "key": public_key, "read_only": read_only}
        try:
            response = self.session.post(url, json=body, headers=self._headers(token), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            logger.error("GitHub deploy key registration failed: %s", exc)
            return DeployKeyResult(success=False, message=str(exc))

        if response.status_code not in (200, 201):
            return DeployKeyResult(
                success=False,
                message=self._error_message(response, "Repository not found or token lacks admin access"),
            )
        data = response.json()
        return DeployKeyResult(success=True, message="Deploy key added", key_id=data.get("id"))

    def delete_deploy_key(self, token: str, owner: str, repo: str, key_id: int) -> DeployKeyResult:
        url = f"{self.base_url}/repos/{owner}/{repo}/keys/{key_id}"
        try:
            response = self.session.delete(url, headers=self._headers(token), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            return DeployKeyResult(success=False, message=str(exc), key_id=key_id)

        if response.status_code not in (204, 404):
            return DeployKeyResult(
                success=False,
                message=self._error_message(response, "Deploy key not found"),
                key_id=key_id,
            )
        # 404 表示已被删除
        return DeployKeyResult(success=True, message="Deploy key removed", key_id=key_id)

    def list_branches(self, token: str, owner: str, repo: str) -> GitHubListResult:
        if not token:
            return GitHubListResult(success=False, message="No token provided")
        url = f"{self.base_url}/repos/{owner}/{repo}/branches"
        try:
            response = self.session.get(url, headers=self._headers(token), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            return GitHubListResult(success=False, message=str(exc) or "Failed to fetch branches")

        if not response.ok:
            return GitHubListResult(success=False, message=self._error_message(response, "Repository not found"))
        branches = [
            {"name": branch["name"], "sha": branch.get("commit", {}).get("sha")}
            for branch in response.json()
        ]
        return GitHubListResult(success=True, items=branches)

    def list_repos(self, token: str) -> GitHubListResult:
        if not token:
            return GitHubListResult(success=False, message="Token is required")
        url = f"{self.base_url}/user/repos"
        params = {"sort": "updated", "per_page": 100, "type": "all"}
        try:
            response = self.session.get(url, params=params, headers=self._headers(token), timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            return GitHubListResult(success=False, message=str(exc))

        if not response.ok:
            if response.status_code == 401:
                return GitHubListResult(success=False, message="Invalid Token. Please check your credentials.")
            return GitHubListResult(success=False, message=self._error_message(response, "Not found"))
        repos = [
            {
                "id": repo.get("id"),
                "name": repo.get("name"),
                "full_name": repo.get("full_name"),
                "html_url": repo.get("html_url"),
                "private": repo.get("private"),
                "default_branch": repo.get("default_branch"),
                "language": repo.get("language"),
                "updated_at": repo.get("updated_at"),
            }
            for repo in response.json()
        ]
        return GitHubListResult(success=True, items=repos)
