"""In-process deployment store."""

from __future__ import annotations

import copy
import threading
from typing import Any, Dict, List, Optional

from ..deploy.models import DeploymentRecord
from .base import DeploymentStore, RecordNotFoundError, apply_update


class InMemoryStore(DeploymentStore):
    """Keeps records in a dict. Returned records are copies."""

    def __init__(self) -> None:
        self._records: Dict[str, DeploymentRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: DeploymentRecord) -> DeploymentRecord:
        with self._lock:
            if record.id in self._records:
                raise ValueError(f"Deployment {record.id} already exists")
            self._records[record.id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def update(self, deploy_id: str, partial: Dict[str, Any]) -> DeploymentRecord:
        with self._lock:
            record = self._records.get(deploy_id)
            if record is None:
                raise RecordNotFoundError(deploy_id)
            apply_update(record, copy.deepcopy(partial))
            return copy.deepcopy(record)

    def find_by_id(self, deploy_id: str) -> Optional[DeploymentRecord]:
        with self._lock:
            record = self._records.get(deploy_id)
            return copy.deepcopy(record) if record else None

    def find_by_host_and_user(self, host: str, user: str) -> List[DeploymentRecord]:
        with self._lock:
            matches = [r for r in self._records.values() if r.host == host and r.user == user]
            return [copy.deepcopy(r) for r in sorted(matches, key=lambda r: r.created_at)]
