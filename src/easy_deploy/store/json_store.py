"""Deployment store backed by one JSON document per deployment."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..deploy.models import DeploymentRecord
from ..paths import get_deployments_dir
from .base import DeploymentStore, RecordNotFoundError, apply_update


class JsonFileStore(DeploymentStore):
    """Persists each record to ``<directory>/<id>.json``.

    Files are re-read on every access so that a ``stop`` issued from another
    process is seen by a running pipeline at its next step boundary.
    """

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = get_deployments_dir(Path(directory) if directory else None)
        self._lock = threading.Lock()

    def _path(self, deploy_id: str) -> Path:
        return self.directory / f"{deploy_id}.json"

    def _read(self, deploy_id: str) -> Optional[DeploymentRecord]:
        path = self._path(deploy_id)
        if not path.is_file():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return DeploymentRecord.from_dict(json.load(f))

    def _write(self, record: DeploymentRecord) -> None:
        path = self._path(record.id)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    def create(self, record: DeploymentRecord) -> DeploymentRecord:
        with self._lock:
            if self._path(record.id).exists():
                raise ValueError(f"Deployment {record.id} already exists")
            self._write(record)
            return record

    def update(self, deploy_id: str, partial: Dict[str, Any]) -> DeploymentRecord:
        with self._lock:
            record = self._read(deploy_id)
            if record is None:
                raise RecordNotFoundError(deploy_id)
            apply_update(record, partial)
            self._write(record)
            return record

    def find_by_id(self, deploy_id: str) -> Optional[DeploymentRecord]:
        with self._lock:
            return self._read(deploy_id)

    def find_by_host_and_user(self, host: str, user: str) -> List[DeploymentRecord]:
        records = []
        with self._lock:
            for path in self.directory.glob("*.json"):
                with open(path, "r", encoding="utf-8") as f:
                    record = DeploymentRecord.from_dict(json.load(f))
                if record.host == host and record.user == user:
                    records.append(record)
        return sorted(records, key=lambda r: r.created_at)
