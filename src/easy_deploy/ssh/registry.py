"""Process-wide registry of live SSH sessions."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

import paramiko

from .credentials import SSHCredentials
from .session import RemoteSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps session keys to live :class:`RemoteSession` objects.

    Sessions are created lazily and only go away when closed explicitly,
    either by exact key or by a substring of the key. Keys must be unique per
    concurrent task (e.g. ``deploy_<deployId>``).
    """

    def __init__(
        self,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._sessions: Dict[str, RemoteSession] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[RemoteSession]:
        with self._lock:
            return self._sessions.get(key)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def get_or_create(
        self,
        key: str,
        credentials: SSHCredentials,
        *,
        with_shell: bool = False,
    ) -> RemoteSession:
        """Return the session for ``key``, connecting a new one if needed.

        Raises :class:`SSHConnectionError` when authentication fails. No retry
        is attempted here.
        """
        with self._lock:
            existing = self._sessions.get(key)
            if existing is not None and not existing.is_active:
                # 连接已断开，丢弃后重连
                logger.info("Session %s is no longer active, reconnecting", key)
                self._sessions.pop(key, None)
            elif existing is not None:
                existing.touch()
                if with_shell:
                    existing.open_shell()
                return existing
        if existing is not None and not existing.is_active:
            existing.close()

        session = RemoteSession(key, credentials, client_factory=self._client_factory)
        session.connect()
        if with_shell:
            try:
                session.open_shell()
            except Exception:
                session.close()
                raise

        with self._lock:
            raced = self._sessions.get(key)
            if raced is not None and raced.is_active:
                winner = raced
            else:
                self._sessions[key] = session
                winner = session
        if winner is not session:
            session.close()
        logger.debug("Opened SSH session %s -> %s", key, credentials.target)
        return winner

    def close(self, key: str) -> bool:
        """Close the session stored under exactly ``key``."""
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            return False
        session.close()
        logger.debug("Closed SSH session %s", key)
        return True

    def close_by_pattern(self, pattern: str) -> int:
        """Close every session whose key contains ``pattern``.

        Returns the number of sessions closed; zero matches is not an error.
        """
        with self._lock:
            matched = [key for key in self._sessions if pattern in key]
            sessions = [self._sessions.pop(key) for key in matched]
        for session in sessions:
            try:
                session.close()
            except Exception as exc:
                logger.warning("Failed to close SSH session %s: %s", session.key, exc)
        if matched:
            logger.info("Closed %d SSH session(s) matching %r", len(matched), pattern)
        return len(matched)

    def close_all(self) -> int:
        return self.close_by_pattern("")


_DEFAULT_REGISTRY: Optional[SessionRegistry] = None


def default_registry() -> SessionRegistry:
    """Return the process-default registry shared by terminals and deployments."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = SessionRegistry()
    return _DEFAULT_REGISTRY
