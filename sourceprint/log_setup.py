# sourceprint/log_setup.py
"""
Logging configuration for applications embedding SourcePrint.

The library itself only creates module loggers; callers decide where the
output goes by calling `configure_logging` once at start-up.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s.%(funcName)s] %(message)s'


def configure_logging(log_file: Optional[str] = None, level: int = logging.DEBUG) -> logging.Logger:
    """
    Sends log records to stdout and, optionally, to a file (overwritten each run).

    Returns:
        The 'sourceprint' package logger.
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    logger = logging.getLogger("sourceprint")
    logger.info("-" * 50)
    logger.info(f"Logging configured (level {logging.getLevelName(level)})")
    if log_file:
        logger.info(f"Logging to file: {log_file}")
    return logger
