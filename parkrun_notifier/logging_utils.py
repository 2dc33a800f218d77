"""
Logging setup and structured event helpers.
"""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_LOG_FILE_MAX_BYTES = 52_428_800
_LOG_FILE_BACKUPS = 3


def configure_logging() -> None:
    """
    Configure root logging once for the process.

    ``LOG_FILE`` adds a size-rotated file handler next to the console output.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = os.getenv("LOG_FILE", "").strip()
    if log_file:
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=_LOG_FILE_MAX_BYTES,
                backupCount=_LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=_LOG_FORMAT,
        handlers=handlers,
    )


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))
