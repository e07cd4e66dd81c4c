"""Logging configuration for the dx CLI

Console output goes to stderr so that command output (paths, JSON) stays
clean on stdout. A rotating debug log is kept under the config directory.
"""
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from config.settings import Settings, settings as default_settings


CONSOLE_FORMAT = "<level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(log_level: str = None, config: Settings = None, log_file: bool = True) -> Optional[Path]:
    """Configure loguru sinks

    Args:
        log_level: Console level override (DEBUG, INFO, WARNING, ERROR).
                   If not provided, uses settings.log_level
        config: Settings providing log directory, rotation and retention
        log_file: Also write the rotating debug log

    Returns:
        Path of the log file, or None if file logging is off or unavailable
    """
    config = config or default_settings
    level = (log_level or config.log_level).upper()

    # Remove default logger
    logger.remove()

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True
    )

    if not log_file:
        return None

    log_path = Path(config.log_dir) / "devkitx.log"
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"File logging disabled, cannot create {log_path.parent}: {e}")
        return None

    logger.add(
        log_path,
        format=FILE_FORMAT,
        level="DEBUG",
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="zip",
        backtrace=True,
        diagnose=False
    )

    logger.debug(f"Log level: {level}, log file: {log_path}")
    return log_path
