"""Unified path constants for easy-deploy.

Local state lives under the .easy-deploy directory:
- .easy-deploy/deployments/   # One JSON snapshot per deployment

Remote layout on the target host:
- /var/www/<app>                       # Project root
- /etc/nginx/sites-available/<app>     # Reverse-proxy vhost
- ~/.ssh/deploy_key_<app>              # Generated deploy key (OAuth clone)
"""

from __future__ import annotations

from pathlib import Path

# 本地目录（在当前工作目录下）
BASE_DIR = Path(".easy-deploy")
DEPLOYMENTS_DIR = BASE_DIR / "deployments"

# 远程目录
REMOTE_WEB_ROOT = "/var/www"
NGINX_AVAILABLE_DIR = "/etc/nginx/sites-available"
NGINX_ENABLED_DIR = "/etc/nginx/sites-enabled"


def get_deployments_dir(base: Path | None = None) -> Path:
    """Return (and create) the directory holding deployment snapshots."""
    directory = Path(base) if base else DEPLOYMENTS_DIR
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def remote_project_dir(app_name: str, web_root: str = REMOTE_WEB_ROOT) -> str:
    return f"{web_root.rstrip('/')}/{app_name}"


def remote_deploy_key(app_name: str) -> str:
    return f"~/.ssh/deploy_key_{app_name}"
