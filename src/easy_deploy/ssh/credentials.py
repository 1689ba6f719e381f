"""SSH credential helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class SSHCredentials:
    """Password credentials for one target host."""

    host: str
    username: str
    password: Optional[str] = None
    port: int = 22
    timeout: int = 20
    keepalive_interval: int = 10

    @property
    def target(self) -> str:
        """Terminal-style session key, ``user@host``."""
        return f"{self.username}@{self.host}"

    def validate(self) -> None:
        if not self.host:
            raise ValueError("No host provided")
        if not self.username:
            raise ValueError("No username provided")
        if not self.password:
            raise ValueError("Password authentication selected but no password provided")
