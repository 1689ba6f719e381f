"""Command builders and thin step helpers layered on the command executor.

Each helper takes ``run``, a callable that executes one command string on the
deployment's session and returns its combined output. Commands that need root
are passed with ``sudo=True`` so the executor can feed ``sudo`` the password;
nothing else is rewritten.
"""

from __future__ import annotations

import logging
import shlex
from typing import Callable, Optional

from ..paths import NGINX_AVAILABLE_DIR, NGINX_ENABLED_DIR
from .models import DeployConfig, Framework
from .outputs import (
    BUILD_FAILED_MARKER,
    INSTALL_FAILED_MARKER,
    SETUP_MARKER,
    Outcome,
    interpret_certbot,
    interpret_nginx_test,
    interpret_pm2_start,
)

logger = logging.getLogger(__name__)

Runner = Callable[..., str]

DEFAULT_NODE_ENTRY = "dist/index.js"
DEFAULT_START_COMMAND = "index.js"

NGINX_TEMPLATE = """server {{
    listen 80;
    server_name {server_name};

    location / {{
        proxy_pass http://localhost:{port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_cache_bypass $http_upgrade;
    }}
}}
"""


# ---- System Setup -------------------------------------------------------


def system_setup_command(node_major: int = 20) -> str:
    return (
        "export DEBIAN_FRONTEND=noninteractive"
        " && sudo -E apt-get update -y"
        " && sudo -E apt-get install -y git nginx curl"
        " && (command -v node >/dev/null 2>&1 || ("
        f"curl -fsSL https://deb.nodesource.com/setup_{node_major}.x -o /tmp/nodesource_setup.sh"
        " && sudo -E bash /tmp/nodesource_setup.sh"
        " && sudo -E apt-get install -y nodejs))"
        " && (command -v pm2 >/dev/null 2>&1 || sudo npm install -g pm2)"
        f" && echo \"{SETUP_MARKER}\""
    )


# ---- Directory & Backup -------------------------------------------------


def prepare_directory_command(web_root: str, project_dir: str, timestamp: int) -> str:
    """Own the web root, move an existing project aside, recreate it empty."""
    backup_dir = f"{project_dir}_backup_{timestamp}"
    return (
        f"sudo mkdir -p {web_root}"
        f" && sudo chown $(whoami):$(whoami) {web_root}"
        f" && if [ -d \"{project_dir}\" ]; then mv \"{project_dir}\" \"{backup_dir}\""
        f" && echo \"Backed up existing directory to {backup_dir}\"; fi"
        f" && mkdir -p \"{project_dir}\""
    )


# ---- Clone Repository ---------------------------------------------------


def keygen_command(key_path: str, app_name: str) -> str:
    return (
        "mkdir -p ~/.ssh && chmod 700 ~/.ssh"
        f" && rm -f {key_path} {key_path}.pub"
        f" && ssh-keygen -t ed25519 -C \"deploy-{app_name}\" -f {key_path} -N \"\" -q"
        f" && cat {key_path}.pub"
    )


def known_hosts_command() -> str:
    return "ssh-keyscan github.com >> ~/.ssh/known_hosts 2>/dev/null"


def clone_command(project_dir: str, branch: str, clone_url: str, key_path: Optional[str] = None) -> str:
    prefix = ""
    if key_path:
        # ~ 在双引号内不展开，使用 $HOME
        remote_key = key_path.replace("~", "$HOME", 1)
        prefix = f"GIT_SSH_COMMAND=\"ssh -i {remote_key} -o IdentitiesOnly=yes\" "
    return f"cd {shlex.quote(project_dir)} && {prefix}git clone -b {shlex.quote(branch)} {clone_url} ."


def list_directory_command(directory: str) -> str:
    return f"ls -A {shlex.quote(directory)}"


# ---- Install & Build ----------------------------------------------------


def write_env_command(app_dir: str, env_vars: str) -> str:
    content = env_vars if env_vars.endswith("\n") else env_vars + "\n"
    return f"cd {shlex.quote(app_dir)} && printf '%s' {shlex.quote(content)} > .env"


def install_command(app_dir: str) -> str:
    return (
        f"cd {shlex.quote(app_dir)}"
        f" && if [ -f package.json ]; then npm install || echo \"{INSTALL_FAILED_MARKER}\";"
        f" elif [ -f requirements.txt ]; then pip3 install -r requirements.txt || echo \"{INSTALL_FAILED_MARKER}\";"
        " else echo \"No dependency manifest found\"; fi"
    )


def build_command(app_dir: str, config: DeployConfig) -> Optional[str]:
    if config.framework == Framework.NEXT:
        build = "npm run build"
    elif config.build_command:
        build = config.build_command
    else:
        return None
    return f"cd {shlex.quote(app_dir)} && ({build}) || echo \"{BUILD_FAILED_MARKER}\""


# ---- Start Application --------------------------------------------------


def pm2_start_command(app_dir: str, config: DeployConfig) -> str:
    name = config.safe_app_name
    port = config.port_number
    prefix = f"cd {shlex.quote(app_dir)} && PORT={port} pm2 start"

    if config.framework == Framework.NEXT:
        return f"{prefix} npm --name \"{name}\" -- start -- -p {port}"

    if config.framework == Framework.STATIC and not config.start_command:
        # 静态站点交给 pm2 自带的 serve
        return f"cd {shlex.quote(app_dir)} && pm2 serve . {port} --name \"{name}\" --spa"

    if config.framework == Framework.NODE:
        script = config.entry_file or DEFAULT_NODE_ENTRY
    else:
        script = config.start_command or DEFAULT_START_COMMAND

    if script.startswith("npm"):
        # "npm start" / "npm run serve" 交给 pm2 以 npm 进程启动
        rest = script.split(" ", 1)[1] if " " in script else "start"
        return f"{prefix} npm --name \"{name}\" -- {rest}"

    command = f"{prefix} {script} --name \"{name}\""
    if config.framework == Framework.PYTHON and script.endswith(".py"):
        command += " --interpreter python3"
    return command


def start_app(run: Runner, app_dir: str, config: DeployConfig) -> Outcome:
    name = config.safe_app_name
    run(f"pm2 delete {name} >/dev/null 2>&1 || true")
    outcome = interpret_pm2_start(run(pm2_start_command(app_dir, config)))
    if outcome.ok:
        run("pm2 save")
    return outcome


def stop_app(run: Runner, app_name: str) -> str:
    return run(f"pm2 stop {app_name}")


def restart_app(run: Runner, app_name: str) -> str:
    return run(f"pm2 restart {app_name}")


def app_logs(run: Runner, app_name: str, lines: int = 100) -> str:
    return run(f"pm2 logs {app_name} --lines {lines} --nostream")


# ---- Configure Nginx ----------------------------------------------------


def render_nginx_config(server_name: str, port: int) -> str:
    return NGINX_TEMPLATE.format(server_name=server_name, port=port)


def configure_nginx(run: Runner, app_name: str, server_name: str, port: int) -> Outcome:
    """Write and enable the vhost; reload nginx only if ``nginx -t`` passes."""
    available = f"{NGINX_AVAILABLE_DIR}/{app_name}"
    enabled = f"{NGINX_ENABLED_DIR}/{app_name}"
    staging = f"/tmp/{app_name}.nginx.conf"
    config_text = render_nginx_config(server_name, port)

    run(f"printf '%s' {shlex.quote(config_text)} > {staging}")
    run(f"sudo mv {staging} {available} && sudo ln -sf {available} {enabled}", sudo=True)
    outcome = interpret_nginx_test(run("sudo nginx -t", sudo=True))
    if outcome.ok:
        run("sudo systemctl reload nginx", sudo=True)
    return outcome


# ---- SSL Certificate ----------------------------------------------------


def certbot_command(domain: str, email: Optional[str] = None) -> str:
    email_flag = f"--email {shlex.quote(email)}" if email else "--register-unsafely-without-email"
    return f"sudo certbot --nginx -d {shlex.quote(domain)} --non-interactive --agree-tos {email_flag} --redirect"


def issue_certificate(run: Runner, domain: str, email: Optional[str] = None) -> Outcome:
    run("sudo DEBIAN_FRONTEND=noninteractive apt-get install -y certbot python3-certbot-nginx", sudo=True)
    return interpret_certbot(run(certbot_command(domain, email), sudo=True))


# ---- Teardown -----------------------------------------------------------


def teardown_app(run: Runner, app_name: str, project_dir: str) -> None:
    """Remove everything a deployment created. Every part is best-effort."""
    try:
        stop_app(run, app_name)
        run(f"pm2 delete {app_name} && pm2 save")
    except Exception as exc:
        logger.warning("Failed to stop pm2 process %s: %s", app_name, exc)

    try:
        run(
            f"sudo rm -f {NGINX_AVAILABLE_DIR}/{app_name} {NGINX_ENABLED_DIR}/{app_name}"
            " && sudo systemctl reload nginx",
            sudo=True,
        )
    except Exception as exc:
        logger.warning("Failed to remove nginx config for %s: %s", app_name, exc)

    try:
        run(f"sudo rm -rf {shlex.quote(project_dir)}", sudo=True)
    except Exception as exc:
        logger.warning("Failed to remove project directory %s: %s", project_dir, exc)
