"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGING_CONFIGURED = False


def get_logger(name: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(
            level=getattr(logging, (level or "INFO").upper(), logging.INFO),
            format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
        )
        # paramiko 的传输日志过于冗长
        logging.getLogger("paramiko").setLevel(logging.WARNING)
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)
