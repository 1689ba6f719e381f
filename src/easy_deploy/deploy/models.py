"""Data models for the deployment pipeline."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_PORT = 3000


class Framework(str, Enum):
    NODE = "node"
    NEXT = "next"
    PYTHON = "python"
    STATIC = "static"
    OTHER = "other"


class AuthType(str, Enum):
    """How the target host authenticates to the git remote."""
    OAUTH = "oauth"         # 生成临时 deploy key 并注册到 GitHub
    TOKEN = "token"         # PAT 嵌入 HTTPS URL
    PASSWORD = "password"   # 用户名/密码嵌入 HTTPS URL
    PUBLIC = "public"       # 无凭据


class DeploymentStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self is not DeploymentStatus.RUNNING


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"


STEP_CATALOG = (
    "System Setup",
    "Directory & Backup",
    "Clone Repository",
    "Install & Build",
    "Start Application",
    "Configure Nginx",
    "SSL Certificate",
)

# 前 5 个步骤失败即中止部署；Nginx 与 SSL 步骤失败只记录
FATAL_STEP_COUNT = 5

_UNSAFE_NAME_CHARS = re.compile(r"[^a-z0-9-]")


def sanitize_app_name(name: str) -> str:
    """Lower-case ``name`` and replace anything outside ``[a-z0-9-]`` with ``-``."""
    return _UNSAFE_NAME_CHARS.sub("-", name.lower())


def parse_port(value: Any, default: int = DEFAULT_PORT) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


@dataclass
class Step:
    name: str
    status: StepStatus = StepStatus.PENDING
    details: Optional[str] = None

    @property
    def is_fatal(self) -> bool:
        return STEP_CATALOG.index(self.name) < FATAL_STEP_COUNT

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name, "status": self.status.value}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        return cls(
            name=data["name"],
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            details=data.get("details"),
        )


def initial_steps() -> List[Step]:
    return [Step(name=name) for name in STEP_CATALOG]


@dataclass(frozen=True)
class DeployConfig:
    """Caller-supplied description of one deployment."""

    app_name: str
    repo_url: str
    branch: str = "main"
    token: Optional[str] = None
    git_username: Optional[str] = None
    git_password: Optional[str] = None
    auth_type: AuthType = AuthType.PUBLIC
    port: str = str(DEFAULT_PORT)
    start_command: Optional[str] = None
    build_command: Optional[str] = None
    entry_file: Optional[str] = None
    root_directory: Optional[str] = None
    domain: Optional[str] = None
    env_vars: Optional[str] = None
    framework: Framework = Framework.NODE

    @property
    def safe_app_name(self) -> str:
        return sanitize_app_name(self.app_name)

    @property
    def port_number(self) -> int:
        return parse_port(self.port)

    @property
    def secrets(self) -> List[str]:
        return [s for s in (self.token, self.git_password) if s]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployConfig":
        """Build from the dashboard's camelCase payload (snake_case also accepted)."""

        def pick(camel: str, snake: str, default: Any = None) -> Any:
            if camel in data and data[camel] not in (None, ""):
                return data[camel]
            if snake in data and data[snake] not in (None, ""):
                return data[snake]
            return default

        return cls(
            app_name=pick("appName", "app_name", ""),
            repo_url=pick("repoUrl", "repo_url", ""),
            branch=pick("branch", "branch", "main"),
            token=pick("token", "token"),
            git_username=pick("gitUsername", "git_username"),
            git_password=pick("gitPassword", "git_password"),
            auth_type=AuthType(pick("authType", "auth_type", AuthType.PUBLIC.value)),
            port=str(pick("port", "port", DEFAULT_PORT)),
            start_command=pick("startCommand", "start_command"),
            build_command=pick("buildCommand", "build_command"),
            entry_file=pick("entryFile", "entry_file"),
            root_directory=pick("rootDirectory", "root_directory"),
            domain=pick("domain", "domain"),
            env_vars=pick("envVars", "env_vars"),
            framework=Framework(pick("framework", "framework", Framework.NODE.value)),
        )


@dataclass
class DeploymentRecord:
    """Persisted snapshot of one deployment run."""

    id: str
    host: str
    user: str
    app_name: str
    repo_url: str
    branch: str
    port: int
    status: DeploymentStatus = DeploymentStatus.RUNNING
    steps: List[Step] = field(default_factory=initial_steps)
    logs: str = ""
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "host": self.host,
            "user": self.user,
            "app_name": self.app_name,
            "repo_url": self.repo_url,
            "branch": self.branch,
            "port": self.port,
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
            "logs": self.logs,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            id=data["id"],
            host=data.get("host", ""),
            user=data.get("user", ""),
            app_name=data.get("app_name", ""),
            repo_url=data.get("repo_url", ""),
            branch=data.get("branch", ""),
            port=parse_port(data.get("port")),
            status=DeploymentStatus(data.get("status", DeploymentStatus.RUNNING.value)),
            steps=[Step.from_dict(s) for s in data.get("steps", [])] or initial_steps(),
            logs=data.get("logs", ""),
            created_at=data.get("created_at", 0.0),
            updated_at=data.get("updated_at", 0.0),
        )


@dataclass
class DeployResult:
    """What the caller receives at the end of a run, success or not."""

    success: bool
    message: str
    deploy_id: str
    logs: List[str] = field(default_factory=list)
    steps: List[Step] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "logs": list(self.logs),
            "steps": [step.to_dict() for step in self.steps],
            "deployId": self.deploy_id,
        }
