"""
Loguru sink setup. Called once at startup (main.py) with the loaded CoreMetadata.
"""

import os
import sys

from loguru import logger

from base.config import CoreMetadata

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(meta: CoreMetadata) -> None:
    """Replace loguru's default stderr sink with the console/file sinks from core.yml."""
    logger.remove()
    level = (meta.log_level or "INFO").upper()
    if meta.log_to_console:
        logger.add(sys.stderr, level=level, format=_LOG_FORMAT)
    if meta.log_file:
        log_dir = os.path.dirname(os.path.abspath(meta.log_file))
        os.makedirs(log_dir, exist_ok=True)
        logger.add(
            meta.log_file,
            level=level,
            format=_LOG_FORMAT,
            rotation="10 MB",
            retention="7 days",
            encoding="utf-8",
            enqueue=True,
        )
    if not meta.log_to_console and not meta.log_file:
        # Never leave the process without any sink.
        logger.add(sys.stderr, level="WARNING", format=_LOG_FORMAT)
    logger.debug("Logging configured: level={} console={} file={}", level, meta.log_to_console, meta.log_file or "-")
