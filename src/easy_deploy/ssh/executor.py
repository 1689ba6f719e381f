"""Run one shell command over a session and collect its output."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .session import RemoteSession, SSHConnectionError

logger = logging.getLogger(__name__)

_SUDO_PATTERN = re.compile(r"\bsudo\s+(?!-S)")


def mask_secrets(text: str, secrets: Optional[Iterable[Optional[str]]] = None) -> str:
    for secret in secrets or ():
        if secret:
            text = text.replace(secret, "***")
    return text


class CommandExecutor:
    """Executes command strings on exec channels.

    The result is the combined stdout/stderr text. There is no exit-code
    contract: callers judge success from the output (see
    :mod:`easy_deploy.deploy.outputs`). The call blocks until the remote side
    closes the channel, with no timeout. If the session is closed or its
    transport dies before the command finishes, :class:`SSHConnectionError`
    is raised instead of returning the partial output.

    Only commands passed with ``sudo=True`` get their ``sudo`` invocations
    fed the SSH password; everything else runs verbatim.
    """

    def __init__(self, chunk_size: int = 4096) -> None:
        self.chunk_size = chunk_size

    def execute(
        self,
        session: RemoteSession,
        command: str,
        *,
        mask: Optional[Iterable[Optional[str]]] = None,
        sudo: bool = False,
    ) -> str:
        actual_command = command
        # 自动处理 sudo：通过 stdin 传递密码
        needs_sudo_password = sudo and "sudo " in command and bool(session.sudo_password)
        if needs_sudo_password:
            actual_command = _SUDO_PATTERN.sub("sudo -S -p '' ", actual_command)

        logger.debug("[%s] $ %s", session.key, mask_secrets(command, mask))
        channel = session.open_exec_channel()
        try:
            channel.set_combine_stderr(True)
            channel.exec_command(actual_command)
            if needs_sudo_password:
                channel.sendall(f"{session.sudo_password}\n".encode("utf-8"))

            chunks = []
            while True:
                data = channel.recv(self.chunk_size)
                if not data:
                    break
                chunks.append(data)
            finished = channel.exit_status_ready()
        finally:
            channel.close()

        # EOF 没有退出状态且连接已断开：命令被中断
        if not finished and (session.closed or not session.is_active):
            raise SSHConnectionError(f"Session {session.key} closed while running: {mask_secrets(command, mask)}")
        return b"".join(chunks).decode("utf-8", errors="replace")
