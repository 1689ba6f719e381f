"""Deployment record stores."""

from .base import DeploymentStore, RecordNotFoundError, apply_update
from .json_store import JsonFileStore
from .memory import InMemoryStore

__all__ = [
    "DeploymentStore",
    "RecordNotFoundError",
    "apply_update",
    "JsonFileStore",
    "InMemoryStore",
]
