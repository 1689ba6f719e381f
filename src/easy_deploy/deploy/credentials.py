"""Repository access strategies for the clone step."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple, Union
from urllib.parse import quote

from .errors import DeployKeyError
from .models import AuthType, DeployConfig

if TYPE_CHECKING:
    from ..github import GitHubClient

logger = logging.getLogger(__name__)

_GITHUB_URL = re.compile(
    r"^(?:https?://(?:[^@/]+@)?github\.com/|git@github\.com:)(?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$"
)


def parse_github_repo(repo_url: str) -> Tuple[str, str]:
    """Return ``(owner, repo)`` for an HTTPS or SSH GitHub URL."""
    match = _GITHUB_URL.match(repo_url.strip())
    if not match:
        raise ValueError(f"Not a GitHub repository URL: {repo_url}")
    return match.group("owner"), match.group("repo")


def _encode_component(value: str) -> str:
    # 与 JS 的 encodeURIComponent 保持一致
    return quote(value, safe="!*'()")


def _embed_userinfo(repo_url: str, userinfo: str) -> str:
    if repo_url.startswith("https://"):
        return repo_url.replace("https://", f"https://{userinfo}@", 1)
    return repo_url


@dataclass(frozen=True)
class DeployKeySource:
    """Clone over SSH with a freshly generated, GitHub-registered deploy key."""

    owner: str
    repo: str
    token: str

    @property
    def clone_url(self) -> str:
        return f"git@github.com:{self.owner}/{self.repo}.git"

    def describe(self) -> str:
        return "ephemeral deploy key (SSH)"


@dataclass(frozen=True)
class TokenSource:
    repo_url: str
    token: str

    @property
    def clone_url(self) -> str:
        return _embed_userinfo(self.repo_url, self.token)

    def describe(self) -> str:
        return "personal access token (HTTPS)"


@dataclass(frozen=True)
class BasicAuthSource:
    repo_url: str
    username: str
    password: str

    @property
    def clone_url(self) -> str:
        userinfo = f"{_encode_component(self.username)}:{_encode_component(self.password)}"
        return _embed_userinfo(self.repo_url, userinfo)

    def describe(self) -> str:
        return "username/password (HTTPS)"


@dataclass(frozen=True)
class PublicSource:
    repo_url: str

    @property
    def clone_url(self) -> str:
        return self.repo_url

    def describe(self) -> str:
        return "public (no credentials)"


CloneSource = Union[DeployKeySource, TokenSource, BasicAuthSource, PublicSource]


def select_clone_source(config: DeployConfig) -> CloneSource:
    """Pick exactly one access mechanism for ``config``.

    OAuth with a token always means a deploy key. Otherwise a token wins over
    a username/password pair.
    """
    if config.auth_type == AuthType.OAUTH and config.token:
        owner, repo = parse_github_repo(config.repo_url)
        return DeployKeySource(owner=owner, repo=repo, token=config.token)
    if config.token:
        return TokenSource(repo_url=config.repo_url, token=config.token)
    if config.git_username and config.git_password:
        return BasicAuthSource(
            repo_url=config.repo_url,
            username=config.git_username,
            password=config.git_password,
        )
    return PublicSource(repo_url=config.repo_url)


class DeployKeyLease:
    """A deploy key registered on GitHub for the duration of a ``with`` block.

    The key is revoked on every exit path (success, failure or cancellation).
    Revocation problems are logged and never mask the original outcome.
    """

    def __init__(
        self,
        github: "GitHubClient",
        source: DeployKeySource,
        public_key: str,
        title: str,
    ) -> None:
        self.github = github
        self.source = source
        self.public_key = public_key
        self.title = title
        self.key_id: Optional[int] = None
        self.revoked = False

    def __enter__(self) -> "DeployKeyLease":
        result = self.github.add_deploy_key(
            self.source.token,
            self.source.owner,
            self.source.repo,
            self.public_key,
            self.title,
        )
        if not result.success:
            raise DeployKeyError(f"Failed to register deploy key: {result.message}")
        self.key_id = result.key_id
        logger.info("🔑 Registered deploy key %s on %s/%s", self.title, self.source.owner, self.source.repo)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.revoke()

    def revoke(self) -> None:
        if self.revoked or self.key_id is None:
            return
        try:
            result = self.github.delete_deploy_key(
                self.source.token, self.source.owner, self.source.repo, self.key_id
            )
        except Exception:
            logger.exception("Failed to revoke deploy key %s", self.key_id)
            return
        if result.success:
            self.revoked = True
            logger.info("🔑 Revoked deploy key %s", self.key_id)
        else:
            logger.warning("Failed to revoke deploy key %s: %s", self.key_id, result.message)
