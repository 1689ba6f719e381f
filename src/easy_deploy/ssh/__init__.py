"""SSH utilities for easy-deploy."""

from .credentials import SSHCredentials
from .executor import CommandExecutor, mask_secrets
from .probe import ConnectionCheck, ProcessInfo, RemoteProbe, SystemStats, check_connection
from .registry import SessionRegistry, default_registry
from .session import RemoteSession, SSHConnectionError

__all__ = [
    "SSHCredentials",
    "CommandExecutor",
    "mask_secrets",
    "ConnectionCheck",
    "ProcessInfo",
    "RemoteProbe",
    "SystemStats",
    "check_connection",
    "SessionRegistry",
    "default_registry",
    "RemoteSession",
    "SSHConnectionError",
]
