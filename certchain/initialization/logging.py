"""
Initialization - Logging Module.

Configures loguru logger for the service.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger


def setup_logging(level: str = "INFO", log_file: str | None = "logs/certchain.log") -> None:
    """
    Configure logger with console output and file rotation.

    Args:
        level: Minimum log level
        log_file: Rotating log file path, or None to log to stderr only
    """
    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level,
            encoding="utf-8",
        )

    logger.info("Starting certchain service...")
