"""Logging configuration for gigboard.

All loggers are children of the ``gigboard`` logger so a single call to
:func:`setup_logging` configures the whole package. Event helpers emit the
``key=value | key=value`` lines used across the API routes.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

ROOT_LOGGER_NAME = "gigboard"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _resolve_level(level: Optional[str]) -> int:
    if not level:
        return logging.INFO
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """Configure the ``gigboard`` logger.

    Adds a stderr handler and, when ``log_dir`` (or ``GIGBOARD_LOG_DIR``) is
    set, a dated file handler. Calling it again only adjusts the level.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(_resolve_level(level or os.environ.get("GIGBOARD_LOG_LEVEL")))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    logger.addHandler(console)

    log_dir = log_dir or os.environ.get("GIGBOARD_LOG_DIR")
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path / f"gigboard-{datetime.now():%Y-%m-%d}.log")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``gigboard`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def _format_fields(fields: dict[str, Any]) -> str:
    return " | ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


def log_job_event(event: str, job_id: str, actor_id: Optional[str] = None, **fields: Any) -> None:
    """Log a job lifecycle event (claim, start, complete, rollback...)."""
    logger = get_logger("gigboard.jobs")
    details = _format_fields({"job": job_id, "actor": actor_id, **fields})
    logger.info(f"job_{event} | {details}")


def log_auth_event(
    event: str, subject: str, success: bool, reason: Optional[str] = None
) -> None:
    """Log an authentication event. Never pass secrets in ``reason``."""
    logger = get_logger("gigboard.auth")
    details = _format_fields({"subject": subject, "reason": reason})
    if success:
        logger.info(f"auth_{event} ok | {details}")
    else:
        logger.warning(f"auth_{event} failed | {details}")
