"""SSH session management built on Paramiko."""

from __future__ import annotations

import time
from typing import Callable, Optional

import paramiko

from .credentials import SSHCredentials


class SSHConnectionError(ConnectionError):
    """Raised when an SSH connection cannot be established."""

    pass


class RemoteSession:
    """One authenticated connection to a target host.

    Owns the paramiko client and, optionally, an interactive PTY channel used
    by terminal front ends. One-shot command channels are opened on demand by
    :class:`~easy_deploy.ssh.executor.CommandExecutor`.
    """

    def __init__(
        self,
        key: str,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.key = key
        self.credentials = credentials
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None
        self.shell: Optional[paramiko.Channel] = None
        self.created_at = time.time()
        self.last_used = self.created_at
        self._closed = False

    @property
    def sudo_password(self) -> Optional[str]:
        """Return the password for sudo commands (same as SSH password)."""
        return self.credentials.password

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_active(self) -> bool:
        if not self._client:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def __enter__(self) -> "RemoteSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        # 关闭后的会话不再重连，由 registry 创建新会话
        if self._closed:
            raise SSHConnectionError(f"Session {self.key} has been closed")
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.credentials.host,
                port=self.credentials.port,
                username=self.credentials.username,
                password=self.credentials.password,
                timeout=self.credentials.timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except Exception as exc:
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        transport = client.get_transport()
        if transport is not None and self.credentials.keepalive_interval:
            transport.set_keepalive(self.credentials.keepalive_interval)
        self._client = client

    def close(self) -> None:
        self._closed = True
        if self.shell is not None:
            self.shell.close()
            self.shell = None
        if self._client:
            self._client.close()
            self._client = None

    def touch(self) -> None:
        self.last_used = time.time()

    def open_exec_channel(self) -> paramiko.Channel:
        """Open a fresh session channel for a single command."""
        if not self._client:
            self.connect()
        assert self._client is not None
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise SSHConnectionError(f"Transport for session {self.key} is closed")
        self.touch()
        return transport.open_session()

    # ---- interactive shell -------------------------------------------------

    def open_shell(self, term: str = "xterm-color", cols: int = 80, rows: int = 24) -> paramiko.Channel:
        if self.shell is not None and not self.shell.closed:
            return self.shell
        if not self._client:
            self.connect()
        assert self._client is not None
        self.shell = self._client.invoke_shell(term=term, width=cols, height=rows)
        self.touch()
        return self.shell

    def write(self, data: str) -> None:
        if self.shell is None:
            raise SSHConnectionError(f"No interactive shell open for session {self.key}")
        self.shell.send(data)
        self.touch()

    def resize(self, cols: int, rows: int) -> None:
        if self.shell is None:
            raise SSHConnectionError(f"No interactive shell open for session {self.key}")
        self.shell.resize_pty(width=cols, height=rows)

    def read_available(self, chunk_size: int = 4096) -> str:
        """Drain whatever the shell has buffered without blocking."""
        if self.shell is None:
            return ""
        chunks = []
        while self.shell.recv_ready():
            chunks.append(self.shell.recv(chunk_size).decode("utf-8", errors="replace"))
        return "".join(chunks)
