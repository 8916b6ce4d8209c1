"""
DivorceIQ Market Atlas - Logging Configuration
Structured JSON logging for production, readable lines for development
"""

import logging
import os
import sys
from datetime import datetime

from pythonjsonlogger import jsonlogger

from config.settings import get_settings

settings = get_settings()


def _build_formatter() -> logging.Formatter:
    if settings.ENVIRONMENT == "production":
        # JSON formatter for log aggregation
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"
        )
    return logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    )


def setup_logging(name: str = "divorce_iq") -> logging.Logger:
    """
    Configure structured logging for an entry point (API, CLI).

    Args:
        name: Logger name, also used as the log file prefix

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))

    logger.handlers = []
    # Avoid double logging when root handlers are configured
    logger.propagate = False

    formatter = _build_formatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        log_file = os.path.join(settings.LOG_DIR, f"{name}_{datetime.now().strftime('%Y%m%d')}.log")

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Module loggers (get_logger(__name__)) propagate to root
    root_logger = logging.getLogger()
    root_logger.setLevel(logger.level)
    root_logger.handlers = list(logger.handlers)

    return logger


def get_logger(module_name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        module_name: Name of the module (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(module_name)
