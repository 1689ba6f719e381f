"""Deployment orchestrator: drives the fixed seven-step pipeline over SSH."""

from __future__ import annotations

import ipaddress
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterator, List, Optional, Tuple

from ..config import DeployDefaults
from ..paths import remote_deploy_key, remote_project_dir
from ..ssh import CommandExecutor, RemoteSession, SessionRegistry, SSHCredentials, default_registry, mask_secrets
from . import steps
from .credentials import DeployKeyLease, DeployKeySource, select_clone_source
from .errors import DeployError, DeployKeyError, DeploymentCancelled
from .models import (
    FATAL_STEP_COUNT,
    STEP_CATALOG,
    DeployConfig,
    DeploymentRecord,
    DeploymentStatus,
    DeployResult,
    Framework,
    Step,
    StepStatus,
    initial_steps,
)
from .outputs import (
    interpret_build,
    interpret_clone,
    interpret_directory,
    interpret_install,
    interpret_listing,
    interpret_public_key,
    interpret_setup,
)

if TYPE_CHECKING:
    from ..github import GitHubClient
    from ..store import DeploymentStore

logger = logging.getLogger(__name__)

SKIPPED_NO_SERVER_NAME = "Skipped (No Domain/IP)"
SKIPPED_NO_DOMAIN = "Skipped (No Domain)"


class DeploymentRun:
    """Mutable state of one pipeline run: session, steps and log lines.

    Every log line and step transition is written through to the store.
    Store failures are logged and never interrupt the pipeline.
    """

    def __init__(
        self,
        deploy_id: str,
        config: DeployConfig,
        credentials: SSHCredentials,
        store: "DeploymentStore",
        executor: CommandExecutor,
    ) -> None:
        self.deploy_id = deploy_id
        self.config = config
        self.credentials = credentials
        self.store = store
        self.executor = executor
        self.session: Optional[RemoteSession] = None
        self.steps: List[Step] = initial_steps()
        self.lines: List[str] = []
        self.mask = [*config.secrets, credentials.password]

    @property
    def session_key(self) -> str:
        return f"deploy_{self.deploy_id}"

    def persist(self, partial: dict) -> None:
        try:
            self.store.update(self.deploy_id, partial)
        except Exception:
            logger.exception("Failed to persist deployment %s", self.deploy_id)

    def log(self, message: str) -> None:
        message = mask_secrets(message, self.mask)
        line = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        logger.info("[Deploy %s] %s", self.config.safe_app_name, message)
        self.lines.append(line)
        self.persist({"logs_append": line})

    def exec(self, command: str, *, sudo: bool = False) -> str:
        assert self.session is not None
        output = self.executor.execute(self.session, command, mask=self.mask, sudo=sudo)
        logger.debug("[Deploy %s] output:\n%s", self.config.safe_app_name, mask_secrets(output, self.mask))
        return output

    def _set_step(self, index: int, status: StepStatus, details: Optional[str] = None) -> None:
        step = self.steps[index]
        step.status = status
        step.details = mask_secrets(details, self.mask) if details else details
        self.persist({"steps": [s.to_dict() for s in self.steps]})

    def start_step(self, index: int) -> None:
        self._set_step(index, StepStatus.RUNNING)

    def finish_step(self, index: int, status: StepStatus, details: Optional[str] = None) -> None:
        self._set_step(index, status, details)

    def fail_running_step(self, message: str) -> None:
        for index, step in enumerate(self.steps):
            if step.status == StepStatus.RUNNING:
                self._set_step(index, StepStatus.FAILURE, message)
                return

    def is_cancelled(self) -> bool:
        try:
            record = self.store.find_by_id(self.deploy_id)
        except Exception:
            logger.exception("Failed to read deployment %s", self.deploy_id)
            return False
        return record is not None and record.status == DeploymentStatus.CANCELLED

    def result(self, success: bool, message: str) -> DeployResult:
        return DeployResult(
            success=success,
            message=mask_secrets(message, self.mask),
            deploy_id=self.deploy_id,
            logs=list(self.lines),
            steps=[Step(s.name, s.status, s.details) for s in self.steps],
        )


class DeploymentOrchestrator:
    """
    部署编排器

    Runs System Setup → Directory & Backup → Clone Repository → Install &
    Build → Start Application → Configure Nginx → SSL Certificate against one
    target. The first five steps abort the pipeline on failure; the last two
    record the failure and carry on.
    """

    def __init__(
        self,
        store: "DeploymentStore",
        *,
        github: Optional["GitHubClient"] = None,
        registry: Optional[SessionRegistry] = None,
        executor: Optional[CommandExecutor] = None,
        defaults: Optional[DeployDefaults] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.github = github
        self.registry = registry or default_registry()
        self.executor = executor or CommandExecutor()
        self.defaults = defaults or DeployDefaults()
        self.clock = clock

    # ---- public API --------------------------------------------------------

    def run(
        self,
        credentials: SSHCredentials,
        config: DeployConfig,
        deploy_id: Optional[str] = None,
    ) -> DeployResult:
        deploy_id = deploy_id or uuid.uuid4().hex
        run = DeploymentRun(deploy_id, config, credentials, self.store, self.executor)
        self._create_record(run)

        logger.info("=" * 60)
        logger.info("🚀 DEPLOYMENT %s: %s -> %s", deploy_id, config.repo_url, credentials.target)
        logger.info("=" * 60)
        run.log(f"Starting deployment for {config.safe_app_name}...")

        pipeline = self._pipeline()
        try:
            run.session = self.registry.get_or_create(run.session_key, credentials)
            for index, handler in enumerate(pipeline):
                if run.is_cancelled():
                    raise DeploymentCancelled()
                logger.info("📍 Step %d/%d: %s", index + 1, len(pipeline), STEP_CATALOG[index])
                run.start_step(index)
                if index < FATAL_STEP_COUNT:
                    details = handler(run)
                    run.finish_step(index, StepStatus.SUCCESS, details)
                else:
                    status, details = self._run_tolerant(run, handler)
                    run.finish_step(index, status, details)

            run.log("Deployment successful!")
            run.persist({"status": DeploymentStatus.SUCCESS.value})
            logger.info("🎉 Deployment %s completed successfully!", deploy_id)
            return run.result(True, "Deployment successful")

        except DeploymentCancelled as exc:
            run.fail_running_step(str(exc))
            run.log(str(exc))
            run.persist({"status": DeploymentStatus.CANCELLED.value})
            logger.warning("⏹️ Deployment %s cancelled", deploy_id)
            return run.result(False, str(exc))

        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            if run.is_cancelled():
                # stop() 关闭了连接，正在执行的命令因此失败
                cancelled = DeploymentCancelled()
                run.fail_running_step(str(cancelled))
                run.log(str(cancelled))
                logger.warning("⏹️ Deployment %s cancelled mid-step: %s", deploy_id, message)
                return run.result(False, str(cancelled))
            if not isinstance(exc, (DeployError, ConnectionError)):
                logger.exception("Unexpected error in deployment %s", deploy_id)
            run.fail_running_step(message)
            run.log(f"Error: {message}")
            run.persist({"status": DeploymentStatus.FAILED.value})
            logger.error("❌ Deployment %s failed: %s", deploy_id, mask_secrets(message, run.mask))
            return run.result(False, message)

        finally:
            self.registry.close(run.session_key)

    def stop(self, deploy_id: str, credentials: SSHCredentials) -> bool:
        """Cancel a deployment out-of-band and tear down what it created."""
        record = self.store.find_by_id(deploy_id)
        if record is None:
            logger.warning("Deployment %s not found", deploy_id)
            return False

        try:
            self.store.update(
                deploy_id,
                {
                    "status": DeploymentStatus.CANCELLED.value,
                    "logs_append": f"[{datetime.now().strftime('%H:%M:%S')}] [SYSTEM] Deployment cancelled by user.",
                },
            )
        except Exception:
            logger.exception("Failed to mark deployment %s as cancelled", deploy_id)

        # 强制关闭正在执行命令的连接
        self.registry.close_by_pattern(deploy_id)

        try:
            self.delete_app(credentials, record.app_name, session_key=f"cleanup_{deploy_id}")
        except Exception as exc:
            logger.warning("Cleanup after stopping %s failed: %s", deploy_id, exc)
        return True

    def delete_app(self, credentials: SSHCredentials, app_name: str, *, session_key: Optional[str] = None) -> None:
        """Stop the pm2 entry, drop the nginx vhost and remove the project directory."""
        key = session_key or f"cleanup_{app_name}_{uuid.uuid4().hex[:8]}"
        with self._remote(credentials, key) as run:
            logger.info("🧹 Removing %s from %s", app_name, credentials.target)
            steps.teardown_app(run, app_name, remote_project_dir(app_name, self.defaults.web_root))

    def restart_app(self, credentials: SSHCredentials, app_name: str) -> str:
        with self._remote(credentials, f"restart_{app_name}_{uuid.uuid4().hex[:8]}") as run:
            logger.info("🔄 Restarting %s on %s", app_name, credentials.target)
            return steps.restart_app(run, app_name)

    def app_logs(self, credentials: SSHCredentials, app_name: str, lines: int = 100) -> str:
        with self._remote(credentials, f"logs_{app_name}_{uuid.uuid4().hex[:8]}") as run:
            return steps.app_logs(run, app_name, lines)

    @contextmanager
    def _remote(self, credentials: SSHCredentials, key: str) -> Iterator[Callable[..., str]]:
        """Yield a runner on a short-lived session that is closed on exit."""
        session = self.registry.get_or_create(key, credentials)

        def run(command: str, *, sudo: bool = False) -> str:
            return self.executor.execute(session, command, mask=[credentials.password], sudo=sudo)

        try:
            yield run
        finally:
            self.registry.close(key)

    # ---- pipeline ----------------------------------------------------------

    def _pipeline(self) -> List[Callable[[DeploymentRun], object]]:
        return [
            self._system_setup,
            self._prepare_directory,
            self._clone_repository,
            self._install_and_build,
            self._start_application,
            self._configure_nginx,
            self._issue_certificate,
        ]

    def _create_record(self, run: DeploymentRun) -> None:
        config = run.config
        record = DeploymentRecord(
            id=run.deploy_id,
            host=run.credentials.host,
            user=run.credentials.username,
            app_name=config.safe_app_name,
            repo_url=mask_secrets(config.repo_url, run.mask),
            branch=config.branch,
            port=config.port_number,
            steps=[Step(s.name) for s in run.steps],
        )
        try:
            self.store.create(record)
        except Exception:
            logger.exception("Failed to create deployment record %s", run.deploy_id)

    @staticmethod
    def _run_tolerant(
        run: DeploymentRun,
        handler: Callable[[DeploymentRun], object],
    ) -> Tuple[StepStatus, Optional[str]]:
        try:
            return handler(run)  # type: ignore[return-value]
        except Exception as exc:
            run.log(f"Warning: {exc}")
            return StepStatus.FAILURE, str(exc)

    def _project_dir(self, config: DeployConfig) -> str:
        return remote_project_dir(config.safe_app_name, self.defaults.web_root)

    def _app_dir(self, config: DeployConfig) -> str:
        project_dir = self._project_dir(config)
        if config.root_directory:
            return f"{project_dir}/{config.root_directory.strip('/')}"
        return project_dir

    def _system_setup(self, run: DeploymentRun) -> Optional[str]:
        run.log("Installing system packages (git, nginx, node, pm2)...")
        output = run.exec(steps.system_setup_command(self.defaults.node_major), sudo=True)
        interpret_setup(output).raise_for_error()
        return None

    def _prepare_directory(self, run: DeploymentRun) -> Optional[str]:
        project_dir = self._project_dir(run.config)
        run.log(f"Preparing {project_dir}...")
        output = run.exec(
            steps.prepare_directory_command(self.defaults.web_root, project_dir, int(self.clock())),
            sudo=True,
        )
        interpret_directory(output).raise_for_error()
        for line in output.splitlines():
            if line.startswith("Backed up"):
                run.log(line.strip())
                return line.strip()
        return None

    def _clone_repository(self, run: DeploymentRun) -> Optional[str]:
        config = run.config
        source = select_clone_source(config)
        run.log(f"Cloning branch {config.branch} using {source.describe()}...")

        if isinstance(source, DeployKeySource):
            self._clone_with_deploy_key(run, source)
        else:
            output = run.exec(steps.clone_command(self._project_dir(config), config.branch, source.clone_url))
            interpret_clone(output).raise_for_error()
            self._verify_checkout(run)
        return f"Cloned with {source.describe()}"

    def _clone_with_deploy_key(self, run: DeploymentRun, source: DeployKeySource) -> None:
        if self.github is None:
            raise DeployKeyError("GitHub client is not configured; cannot register a deploy key.")
        app_name = run.config.safe_app_name
        key_path = remote_deploy_key(app_name)

        run.log("Generating deploy key on the server...")
        public_key = interpret_public_key(run.exec(steps.keygen_command(key_path, app_name)))
        public_key.raise_for_error()

        title = f"easy-deploy {app_name} {int(self.clock())}"
        with DeployKeyLease(self.github, source, public_key.output, title):
            run.log("Deploy key registered with GitHub.")
            run.exec(steps.known_hosts_command())
            output = run.exec(
                steps.clone_command(self._project_dir(run.config), run.config.branch, source.clone_url, key_path)
            )
            interpret_clone(output).raise_for_error()
            self._verify_checkout(run)

    def _verify_checkout(self, run: DeploymentRun) -> None:
        config = run.config
        listing = run.exec(steps.list_directory_command(self._app_dir(config)))
        interpret_listing(
            listing,
            requires_package_json=config.framework in (Framework.NODE, Framework.NEXT),
        ).raise_for_error()
        run.log("Repository cloned.")

    def _install_and_build(self, run: DeploymentRun) -> Optional[str]:
        config = run.config
        app_dir = self._app_dir(config)

        if config.env_vars:
            run.log("Writing environment variables to .env...")
            run.exec(steps.write_env_command(app_dir, config.env_vars))

        run.log("Installing dependencies...")
        interpret_install(run.exec(steps.install_command(app_dir))).raise_for_error()

        build = steps.build_command(app_dir, config)
        if build:
            run.log("Building application...")
            interpret_build(run.exec(build)).raise_for_error()
        return None

    def _start_application(self, run: DeploymentRun) -> Optional[str]:
        config = run.config
        run.log(f"Starting {config.safe_app_name} with PM2 on port {config.port_number}...")
        steps.start_app(run.exec, self._app_dir(config), config).raise_for_error()
        return None

    def _configure_nginx(self, run: DeploymentRun) -> Tuple[StepStatus, Optional[str]]:
        config = run.config
        server_name = (config.domain or "").strip()
        if not server_name:
            run.log("No domain or IP configured, skipping Nginx.")
            return StepStatus.SUCCESS, SKIPPED_NO_SERVER_NAME

        run.log(f"Configuring Nginx for {server_name}...")
        outcome = steps.configure_nginx(run.exec, config.safe_app_name, server_name, config.port_number)
        if not outcome.ok:
            run.log(str(outcome.error))
            return StepStatus.FAILURE, str(outcome.error)
        run.log("Nginx configured and reloaded.")
        return StepStatus.SUCCESS, f"{server_name} -> localhost:{config.port_number}"

    def _issue_certificate(self, run: DeploymentRun) -> Tuple[StepStatus, Optional[str]]:
        domain = (run.config.domain or "").strip()
        if not domain or _is_ip_address(domain):
            return StepStatus.SUCCESS, SKIPPED_NO_DOMAIN

        run.log(f"Requesting SSL certificate for {domain}...")
        outcome = steps.issue_certificate(run.exec, domain, self.defaults.certbot_email)
        if not outcome.ok:
            run.log(str(outcome.error))
            return StepStatus.FAILURE, str(outcome.error)
        run.log("SSL certificate installed.")
        return StepStatus.SUCCESS, f"HTTPS enabled for {domain}"


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True
