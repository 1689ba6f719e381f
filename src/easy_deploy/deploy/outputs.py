"""Interpretation of third-party CLI output.

git, npm, pm2, nginx and certbot are run through a plain exec channel with no
exit-code contract, so each outcome is judged from the combined output text.
Every substring heuristic lives here; the orchestrator only sees an
:class:`Outcome`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import (
    BuildError,
    CertificateError,
    CloneAuthError,
    CloneGenericError,
    CloneNotFoundError,
    ConfigValidationError,
    DeployError,
    DeployKeyError,
    DirectoryError,
    ProjectValidationError,
    SetupError,
    StartError,
)

SETUP_MARKER = "SETUP_OK"
INSTALL_FAILED_MARKER = "INSTALL_FAILED"
BUILD_FAILED_MARKER = "BUILD_FAILED"


@dataclass
class Outcome:
    ok: bool
    error: Optional[DeployError] = None
    output: str = ""

    @classmethod
    def success(cls, output: str = "") -> "Outcome":
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: DeployError, output: str = "") -> "Outcome":
        return cls(ok=False, error=error, output=output)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


def _tail(output: str, lines: int = 5) -> str:
    return "\n".join(output.strip().splitlines()[-lines:])


def interpret_setup(output: str) -> Outcome:
    if SETUP_MARKER in output:
        return Outcome.success(output)
    return Outcome.failure(SetupError(f"System setup failed: {_tail(output)}"), output)


def interpret_directory(output: str) -> Outcome:
    if "Permission denied" in output or "cannot move" in output:
        return Outcome.failure(DirectoryError(f"Could not prepare project directory: {_tail(output)}"), output)
    return Outcome.success(output)


def interpret_public_key(output: str) -> Outcome:
    """Find the generated ed25519 public key in ``cat *.pub`` output."""
    for line in output.splitlines():
        if line.strip().startswith("ssh-ed25519 "):
            return Outcome.success(line.strip())
    return Outcome.failure(DeployKeyError(f"Deploy key generation failed: {_tail(output)}"), output)


def interpret_clone(output: str) -> Outcome:
    if (
        "Authentication failed" in output
        or "could not read Username" in output
        or "Permission denied (publickey)" in output
    ):
        return Outcome.failure(CloneAuthError("Git Authentication failed."), output)
    if "not found" in output.lower():
        return Outcome.failure(
            CloneNotFoundError("Repository or branch not found. Check the URL, branch and access rights."),
            output,
        )
    if "fatal" in output:
        return Outcome.failure(CloneGenericError(f"Git clone failed: {_tail(output)}"), output)
    return Outcome.success(output)


def interpret_listing(output: str, *, requires_package_json: bool) -> Outcome:
    entries = [line.strip() for line in output.splitlines() if line.strip()]
    if requires_package_json:
        if "package.json" not in entries:
            return Outcome.failure(
                ProjectValidationError("package.json not found in project directory. Check the root directory setting."),
                output,
            )
    elif not entries:
        return Outcome.failure(ProjectValidationError("Project directory is empty after clone."), output)
    return Outcome.success(output)


def interpret_install(output: str) -> Outcome:
    if INSTALL_FAILED_MARKER in output or "npm ERR!" in output or "npm error" in output:
        return Outcome.failure(BuildError(f"Dependency installation failed: {_tail(output)}"), output)
    return Outcome.success(output)


def interpret_build(output: str) -> Outcome:
    if BUILD_FAILED_MARKER in output or "npm ERR!" in output or "npm error" in output:
        return Outcome.failure(BuildError(f"Build failed: {_tail(output)}"), output)
    return Outcome.success(output)


def interpret_pm2_start(output: str) -> Outcome:
    if "[PM2][ERROR]" in output:
        return Outcome.failure(StartError(f"Process manager failed to start the app: {_tail(output)}"), output)
    return Outcome.success(output)


def interpret_nginx_test(output: str) -> Outcome:
    if "successful" in output:
        return Outcome.success(output)
    return Outcome.failure(ConfigValidationError(f"Nginx config test failed: {_tail(output)}"), output)


def interpret_certbot(output: str) -> Outcome:
    if "Congratulations" in output or "Successfully deployed certificate" in output:
        return Outcome.success(output)
    if "DNS problem" in output or "NXDOMAIN" in output:
        return Outcome.failure(
            CertificateError("SSL failed: domain does not resolve to this server yet."),
            output,
        )
    return Outcome.failure(CertificateError(f"SSL failed: {_tail(output)}"), output)
