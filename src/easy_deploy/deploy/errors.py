"""Exception hierarchy for the deployment pipeline."""

from __future__ import annotations


class DeployError(Exception):
    """Base class for pipeline failures; the message is shown to the operator."""


class DeploymentCancelled(DeployError):
    """Raised at a step boundary once the record has been marked CANCELLED."""

    def __init__(self, message: str = "Deployment cancelled by user.") -> None:
        super().__init__(message)


class SetupError(DeployError):
    """System packages could not be installed."""


class DirectoryError(DeployError):
    """The project directory could not be prepared."""


class CloneError(DeployError):
    """git clone did not produce a checkout."""


class CloneAuthError(CloneError):
    pass


class CloneNotFoundError(CloneError):
    pass


class CloneGenericError(CloneError):
    pass


class DeployKeyError(DeployError):
    """Generating or registering the ephemeral deploy key failed."""


class ProjectValidationError(DeployError):
    """The checkout does not look like a deployable project."""


class BuildError(DeployError):
    pass


class StartError(DeployError):
    """pm2 refused to start the application."""


class ConfigValidationError(DeployError):
    """nginx -t rejected the generated vhost. Not fatal."""


class CertificateError(DeployError):
    """certbot did not issue a certificate. Not fatal."""
