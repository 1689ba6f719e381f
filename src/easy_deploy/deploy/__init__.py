"""Deployment pipeline: models, credential strategy, step helpers and orchestrator.

- DeploymentOrchestrator: runs the seven-step pipeline and the stop/teardown path
- DeployConfig/DeploymentRecord/Step: typed state persisted through the store
- outputs: typed interpretation of third-party CLI output
"""

from .credentials import (
    BasicAuthSource,
    DeployKeyLease,
    DeployKeySource,
    PublicSource,
    TokenSource,
    parse_github_repo,
    select_clone_source,
)
from .errors import (
    BuildError,
    CertificateError,
    CloneAuthError,
    CloneError,
    CloneGenericError,
    CloneNotFoundError,
    ConfigValidationError,
    DeployError,
    DeployKeyError,
    DeploymentCancelled,
    DirectoryError,
    ProjectValidationError,
    SetupError,
    StartError,
)
from .models import (
    STEP_CATALOG,
    AuthType,
    DeployConfig,
    DeploymentRecord,
    DeploymentStatus,
    DeployResult,
    Framework,
    Step,
    StepStatus,
    sanitize_app_name,
)
from .orchestrator import DeploymentOrchestrator, DeploymentRun

__all__ = [
    "BasicAuthSource",
    "DeployKeyLease",
    "DeployKeySource",
    "PublicSource",
    "TokenSource",
    "parse_github_repo",
    "select_clone_source",
    "BuildError",
    "CertificateError",
    "CloneAuthError",
    "CloneError",
    "CloneGenericError",
    "CloneNotFoundError",
    "ConfigValidationError",
    "DeployError",
    "DeployKeyError",
    "DeploymentCancelled",
    "DirectoryError",
    "ProjectValidationError",
    "SetupError",
    "StartError",
    "STEP_CATALOG",
    "AuthType",
    "DeployConfig",
    "DeploymentRecord",
    "DeploymentStatus",
    "DeployResult",
    "Framework",
    "Step",
    "StepStatus",
    "sanitize_app_name",
    "DeploymentOrchestrator",
    "DeploymentRun",
]
