"""Configuration loading utilities for easy-deploy."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/default_config.json")


@dataclass
class SSHConfig:
    """Connection defaults for target hosts."""

    port: int = 22
    timeout: int = 20
    keepalive_interval: int = 10
    default_host: Optional[str] = None
    default_username: Optional[str] = None
    default_password: Optional[str] = None


@dataclass
class DeployDefaults:
    """Settings used by the deployment pipeline."""

    web_root: str = "/var/www"
    default_port: int = 3000
    node_major: int = 20                 # NodeSource 安装的 Node 主版本
    certbot_email: Optional[str] = None  # 为空时使用 --register-unsafely-without-email


@dataclass
class GitHubConfig:
    """GitHub REST API access."""

    api_url: str = "https://api.github.com"
    token: Optional[str] = None
    timeout: int = 30


@dataclass
class StoreConfig:
    """Where deployment records are persisted."""

    backend: str = "json"  # "json" | "memory"
    path: str = ".easy-deploy/deployments"


@dataclass
class AppConfig:
    """Top-level configuration."""

    ssh: SSHConfig = field(default_factory=SSHConfig)
    deploy: DeployDefaults = field(default_factory=DeployDefaults)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            # 过滤掉以下划线开头的注释字段
            return {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(
            ssh=SSHConfig(**{**SSHConfig().__dict__, **section("ssh")}),
            deploy=DeployDefaults(**{**DeployDefaults().__dict__, **section("deploy")}),
            github=GitHubConfig(**{**GitHubConfig().__dict__, **section("github")}),
            store=StoreConfig(**{**StoreConfig().__dict__, **section("store")}),
            log_level=payload.get("log_level", "INFO"),
        )


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    Falls back to built-in defaults when no file exists at the default
    location; an explicit `path` that does not exist is an error.

    Environment variables (higher priority than config file):
    - EASY_DEPLOY_SSH_HOST / _SSH_PORT / _SSH_USERNAME / _SSH_PASSWORD
    - EASY_DEPLOY_GITHUB_TOKEN (or GITHUB_TOKEN): token for deploy keys and branches
    - EASY_DEPLOY_CERTBOT_EMAIL: account email for certificate issuance
    - EASY_DEPLOY_STORE_PATH: directory for deployment snapshots
    - EASY_DEPLOY_LOG_LEVEL: logging level name
    """
    if path and not Path(path).is_file():
        raise FileNotFoundError(f"Could not find configuration file: {path}")

    candidate = Path(path) if path else _DEFAULT_CONFIG_PATH
    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            config = AppConfig.from_dict(json.load(handle))
    else:
        config = AppConfig()

    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: AppConfig) -> None:
    env_host = os.getenv("EASY_DEPLOY_SSH_HOST")
    if env_host:
        config.ssh.default_host = env_host

    env_port = os.getenv("EASY_DEPLOY_SSH_PORT")
    if env_port:
        config.ssh.port = int(env_port)

    env_username = os.getenv("EASY_DEPLOY_SSH_USERNAME")
    if env_username:
        config.ssh.default_username = env_username

    env_password = os.getenv("EASY_DEPLOY_SSH_PASSWORD")
    if env_password:
        config.ssh.default_password = env_password

    env_token = os.getenv("EASY_DEPLOY_GITHUB_TOKEN") or os.getenv("GITHUB_TOKEN")
    if env_token and not config.github.token:
        config.github.token = env_token

    env_email = os.getenv("EASY_DEPLOY_CERTBOT_EMAIL")
    if env_email:
        config.deploy.certbot_email = env_email

    env_store = os.getenv("EASY_DEPLOY_STORE_PATH")
    if env_store:
        config.store.path = env_store

    env_level = os.getenv("EASY_DEPLOY_LOG_LEVEL")
    if env_level:
        config.log_level = env_level
