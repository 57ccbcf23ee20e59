"""
Logging configuration for Classroom Sync.

Three loguru sinks:
- stderr, colored, at the configured level
- data/logs/classroom_sync_<date>.log with everything, rotated daily
- data/logs/sync_activity_<date>.log with sync cycles and notifications only

Every record carries the portal user it was logged for ({extra[user]}).
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from .config import AppConfig

LOG_DIR = Path(__file__).parent.parent.parent / "data" / "logs"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[user]}</magenta> | <cyan>{name}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[user]} | {name}:{function}:{line} - {message}"

# Modules whose records also go to the sync activity log
ACTIVITY_MODULES = (
    "classroom_sync.classroom.sync",
    "classroom_sync.classroom.notifications",
)


def _is_activity(record) -> bool:
    return record["name"].startswith(ACTIVITY_MODULES)


def setup_logging(
    config: AppConfig | None = None,
    log_dir: Optional[Path] = None,
    user_id: Optional[str] = None,
) -> None:
    """
    Configure logging for Classroom Sync.

    Args:
        config: Application configuration (log level and debug flag)
        log_dir: Directory for log files (defaults to data/logs)
        user_id: Portal user shown on every record
    """
    logger.remove()
    logger.configure(extra={"user": user_id or "-"})

    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    log_level = "INFO"
    if config:
        log_level = "DEBUG" if config.general.debug else config.general.log_level

    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=log_level, colorize=True, diagnose=False)

    logger.add(
        log_dir / "classroom_sync_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="DEBUG",
        rotation="00:00",
        retention="14 days",
        compression="zip",
        diagnose=False,
    )

    logger.add(
        log_dir / "sync_activity_{time:YYYY-MM-DD}.log",
        format=FILE_FORMAT,
        level="INFO",
        filter=_is_activity,
        rotation="00:00",
        retention="60 days",
        diagnose=False,
    )

    logger.debug(f"Logging initialized at {log_level} in {log_dir}")
