"""Record store interface shared by the orchestrator and the CLI."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..deploy.models import DeploymentRecord, DeploymentStatus, Step

logger = logging.getLogger(__name__)


class RecordNotFoundError(KeyError):
    """Raised when updating a deployment id the store does not know."""


class DeploymentStore(ABC):
    """create / update / find interface over deployment records."""

    @abstractmethod
    def create(self, record: DeploymentRecord) -> DeploymentRecord:
        ...

    @abstractmethod
    def update(self, deploy_id: str, partial: Dict[str, Any]) -> DeploymentRecord:
        ...

    @abstractmethod
    def find_by_id(self, deploy_id: str) -> Optional[DeploymentRecord]:
        ...

    @abstractmethod
    def find_by_host_and_user(self, host: str, user: str) -> List[DeploymentRecord]:
        ...


def apply_update(record: DeploymentRecord, partial: Dict[str, Any]) -> DeploymentRecord:
    """Merge ``partial`` into ``record`` in place.

    Terminal statuses are sticky: once a record is SUCCESS, FAILED or
    CANCELLED, a status write is dropped (the rest of the partial still
    applies, so final logs and steps are kept). The ``logs_append`` key
    appends one line to ``logs``.
    """
    for key, value in partial.items():
        if key == "status":
            status = DeploymentStatus(value)
            if record.status.is_terminal and status is not record.status:
                logger.warning(
                    "Ignoring status change %s -> %s for deployment %s",
                    record.status.value,
                    status.value,
                    record.id,
                )
                continue
            record.status = status
        elif key == "logs_append":
            # 日志只追加，避免覆盖 stop() 写入的系统日志
            record.logs = f"{record.logs}\n{value}" if record.logs else value
        elif key == "steps":
            record.steps = [s if isinstance(s, Step) else Step.from_dict(s) for s in value]
        elif key in ("id", "created_at"):
            continue
        elif hasattr(record, key):
            setattr(record, key, value)
        else:
            raise KeyError(f"Unknown deployment field: {key}")
    record.updated_at = time.time()
    return record
