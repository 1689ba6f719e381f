"""Command-line interface for easy-deploy."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import AppConfig, load_config
from .deploy import DeployConfig, DeploymentOrchestrator, Step, StepStatus, parse_github_repo, sanitize_app_name
from .github import GitHubClient
from .ssh import RemoteProbe, SSHCredentials, check_connection, default_registry
from .store import DeploymentStore, InMemoryStore, JsonFileStore
from .utils.logging import get_logger

console = Console()

_STATUS_STYLES = {
    StepStatus.PENDING: ("•", "dim"),
    StepStatus.RUNNING: ("🔄", "yellow"),
    StepStatus.SUCCESS: ("✅", "green"),
    StepStatus.FAILURE: ("❌", "red"),
}


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    store: DeploymentStore


def _add_ssh_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", help="Target server host or IP")
    parser.add_argument("--user", help="SSH username")
    parser.add_argument("--password", help="SSH password", default=None)
    parser.add_argument("--ssh-port", type=int, default=None, help="SSH port")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="easy-deploy",
        description="Provision a VPS over SSH and deploy a Git repository behind nginx + pm2.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser("deploy", help="Deploy a repository to a server")
    _add_ssh_arguments(deploy_parser)
    deploy_parser.add_argument("--app", required=True, help="Application name (sanitized to [a-z0-9-])")
    deploy_parser.add_argument("--repo", required=True, help="Git repository URL")
    deploy_parser.add_argument("--branch", default="main")
    deploy_parser.add_argument(
        "--framework",
        choices=["node", "next", "python", "static", "other"],
        default="node",
    )
    deploy_parser.add_argument("--app-port", default=None, help="Port the app listens on (default 3000)")
    deploy_parser.add_argument("--domain", default=None, help="Domain or IP for the nginx server_name")
    deploy_parser.add_argument(
        "--auth-type",
        choices=["oauth", "token", "password", "public"],
        default=None,
        help="Repository access method (default: inferred from the secrets given)",
    )
    deploy_parser.add_argument("--token", default=None, help="GitHub token (PAT or OAuth)")
    deploy_parser.add_argument("--git-username", default=None)
    deploy_parser.add_argument("--git-password", default=None)
    deploy_parser.add_argument("--start-command", default=None)
    deploy_parser.add_argument("--build-command", default=None)
    deploy_parser.add_argument("--entry-file", default=None)
    deploy_parser.add_argument("--root-dir", default=None, help="Subdirectory containing the app")
    deploy_parser.add_argument("--env-file", default=None, help="Local file copied to the app's .env")
    deploy_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    stop_parser = subparsers.add_parser("stop", help="Cancel a deployment and remove the app")
    stop_parser.add_argument("deploy_id")
    _add_ssh_arguments(stop_parser)

    delete_parser = subparsers.add_parser("delete", help="Remove a deployed app from a server")
    delete_parser.add_argument("--app", required=True)
    _add_ssh_arguments(delete_parser)

    restart_parser = subparsers.add_parser("restart", help="Restart a deployed app's pm2 process")
    restart_parser.add_argument("--app", required=True)
    _add_ssh_arguments(restart_parser)

    app_logs_parser = subparsers.add_parser("app-logs", help="Print recent pm2 output of a deployed app")
    app_logs_parser.add_argument("--app", required=True)
    app_logs_parser.add_argument("--lines", type=int, default=100)
    _add_ssh_arguments(app_logs_parser)

    status_parser = subparsers.add_parser("status", help="Show the steps of a deployment")
    status_parser.add_argument("deploy_id")

    logs_parser = subparsers.add_parser("logs", help="Print the log of a deployment")
    logs_parser.add_argument("deploy_id")

    list_parser = subparsers.add_parser("list", help="List deployments for a server")
    list_parser.add_argument("--host", required=True)
    list_parser.add_argument("--user", required=True)

    check_parser = subparsers.add_parser("check", help="Test SSH access and show server stats")
    _add_ssh_arguments(check_parser)
    check_parser.add_argument("--stats", action="store_true", help="Also collect CPU/memory/disk stats")

    branches_parser = subparsers.add_parser("branches", help="List branches of a GitHub repository")
    branches_parser.add_argument("--repo", required=True)
    branches_parser.add_argument("--token", default=None)

    return parser


def _build_store(config: AppConfig) -> DeploymentStore:
    if config.store.backend == "memory":
        return InMemoryStore()
    return JsonFileStore(config.store.path)


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    get_logger(__name__, config.log_level)
    return CLIContext(config=config, store=_build_store(config))


def _credentials(args: argparse.Namespace, config: AppConfig) -> SSHCredentials:
    ssh = config.ssh
    credentials = SSHCredentials(
        host=args.host or ssh.default_host or "",
        username=args.user or ssh.default_username or "",
        password=args.password if args.password is not None else ssh.default_password,
        port=args.ssh_port or ssh.port,
        timeout=ssh.timeout,
        keepalive_interval=ssh.keepalive_interval,
    )
    credentials.validate()
    return credentials


def _orchestrator(context: CLIContext) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(
        context.store,
        github=GitHubClient(context.config.github),
        registry=default_registry(),
        defaults=context.config.deploy,
    )


def _infer_auth_type(args: argparse.Namespace) -> str:
    if args.auth_type:
        return args.auth_type
    if args.token:
        return "token"
    if args.git_username and args.git_password:
        return "password"
    return "public"


def _render_steps(steps: List[Step], title: str) -> None:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Details", overflow="fold")
    for index, step in enumerate(steps, 1):
        icon, style = _STATUS_STYLES[step.status]
        table.add_row(str(index), step.name, f"[{style}]{icon} {step.status.value}[/{style}]", escape(step.details or ""))
    console.print(table)


def handle_deploy_command(args: argparse.Namespace, context: CLIContext) -> int:
    credentials = _credentials(args, context.config)
    env_vars = None
    if args.env_file:
        env_vars = Path(args.env_file).read_text(encoding="utf-8")

    token = args.token or context.config.github.token
    payload = {
        "appName": args.app,
        "repoUrl": args.repo,
        "branch": args.branch,
        "token": token if args.token or args.auth_type in ("oauth", "token") else None,
        "gitUsername": args.git_username,
        "gitPassword": args.git_password,
        "authType": _infer_auth_type(args),
        "port": args.app_port or str(context.config.deploy.default_port),
        "startCommand": args.start_command,
        "buildCommand": args.build_command,
        "entryFile": args.entry_file,
        "rootDirectory": args.root_dir,
        "domain": args.domain,
        "envVars": env_vars,
        "framework": args.framework,
    }
    result = _orchestrator(context).run(credentials, DeployConfig.from_dict(payload))

    if args.json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _render_steps(result.steps, f"Deployment {result.deploy_id}")
        style = "green" if result.success else "red"
        console.print(f"[{style}]{escape(result.message)}[/{style}]")
    return 0 if result.success else 1


def handle_stop_command(args: argparse.Namespace, context: CLIContext) -> int:
    credentials = _credentials(args, context.config)
    if not _orchestrator(context).stop(args.deploy_id, credentials):
        console.print(f"[red]Deployment {args.deploy_id} not found[/red]")
        return 1
    console.print(f"⏹️  Deployment {args.deploy_id} cancelled and cleaned up")
    return 0


def handle_delete_command(args: argparse.Namespace, context: CLIContext) -> int:
    credentials = _credentials(args, context.config)
    _orchestrator(context).delete_app(credentials, sanitize_app_name(args.app))
    console.print(f"🧹 Removed {args.app} from {credentials.target}")
    return 0


def handle_restart_command(args: argparse.Namespace, context: CLIContext) -> int:
    credentials = _credentials(args, context.config)
    output = _orchestrator(context).restart_app(credentials, sanitize_app_name(args.app))
    console.print(output, markup=False, highlight=False)
    return 0


def handle_app_logs_command(args: argparse.Namespace, context: CLIContext) -> int:
    credentials = _credentials(args, context.config)
    output = _orchestrator(context).app_logs(credentials, sanitize_app_name(args.app), args.lines)
    console.print(output, markup=False, highlight=False)
    return 0


def handle_status_command(args: argparse.Namespace, context: CLIContext) -> int:
    record = context.store.find_by_id(args.deploy_id)
    if record is None:
        console.print(f"[red]Deployment {args.deploy_id} not found[/red]")
        return 1
    _render_steps(record.steps, f"{record.app_name} @ {record.user}@{record.host} ({record.status.value})")
    return 0


def handle_logs_command(args: argparse.Namespace, context: CLIContext) -> int:
    record = context.store.find_by_id(args.deploy_id)
    if record is None:
        console.print(f"[red]Deployment {args.deploy_id} not found[/red]")
        return 1
    console.print(record.logs or "(no logs)", markup=False, highlight=False)
    return 0


def handle_list_command(args: argparse.Namespace, context: CLIContext) -> int:
    records = context.store.find_by_host_and_user(args.host, args.user)
    if not records:
        console.print("📁 No deployments found for this server.")
        return 0
    table = Table(title=f"Deployments on {args.user}@{args.host}")
    table.add_column("ID")
    table.add_column("App")
    table.add_column("Branch")
    table.add_column("Port", justify="right")
    table.add_column("Status")
    for record in records:
        table.add_row(record.id, record.app_name, record.branch, str(record.port), record.status.value)
    console.print(table)
    return 0


def handle_check_command(args: argparse.Namespace, context: CLIContext) -> int:
    credentials = _credentials(args, context.config)
    check = check_connection(credentials)
    style = "green" if check.success else "red"
    console.print(f"[{style}]{escape(check.message)}[/{style}]")
    if not check.success or not args.stats:
        return 0 if check.success else 1

    registry = default_registry()
    key = f"stats_{credentials.target}"
    try:
        stats = RemoteProbe().collect(registry.get_or_create(key, credentials))
    finally:
        registry.close(key)

    table = Table(title=f"{credentials.target}")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("CPU", stats.cpu)
    table.add_row("Memory", stats.memory)
    table.add_row("Disk /", stats.storage)
    table.add_row("Load average", stats.load_avg)
    table.add_row("Uptime", stats.uptime)
    table.add_row("Nginx sites", ", ".join(stats.sites) or "-")
    console.print(table)
    return 0


def handle_branches_command(args: argparse.Namespace, context: CLIContext) -> int:
    owner, repo = parse_github_repo(args.repo)
    token = args.token or context.config.github.token or ""
    result = GitHubClient(context.config.github).list_branches(token, owner, repo)
    if not result.success:
        console.print(f"[red]{escape(result.message)}[/red]")
        return 1
    for branch in result.items:
        console.print(f"{branch['name']}  [dim]{(branch.get('sha') or '')[:7]}[/dim]")
    return 0


_HANDLERS = {
    "deploy": handle_deploy_command,
    "stop": handle_stop_command,
    "delete": handle_delete_command,
    "restart": handle_restart_command,
    "app-logs": handle_app_logs_command,
    "status": handle_status_command,
    "logs": handle_logs_command,
    "list": handle_list_command,
    "check": handle_check_command,
    "branches": handle_branches_command,
}


def dispatch_command(args: argparse.Namespace) -> int:
    context = _build_context(args)
    handler = _HANDLERS.get(args.command)
    if handler is None:
        raise ValueError(f"Unsupported command: {args.command}")
    return handler(args, context)


def run_cli(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args)
