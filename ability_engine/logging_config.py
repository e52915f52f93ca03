"""
Logging Configuration Module.

This module provides centralized logging configuration for the ability engine.
Library modules only create loggers with ``logging.getLogger(__name__)``; an
application embedding the engine calls :func:`setup_logging` once at startup.

Features:
- Configurable log levels per module
- Console and optional file logging
- Simple, detailed and JSON-like line formats
- A dedicated ``ability_engine.sandbox.code`` logger for output of ability code

Secret values never reach these handlers: the engine logs header names and
counts only.
"""

import logging
import os
from pathlib import Path
from typing import Optional

LOG_LEVEL = os.getenv("ABILITY_ENGINE_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("ABILITY_ENGINE_LOG_FORMAT", "detailed")
LOG_FILE_DIR = os.getenv("ABILITY_ENGINE_LOG_DIR", "logs")


# Define log formats
SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

FORMATS = {
    "simple": SIMPLE_FORMAT,
    "detailed": DETAILED_FORMAT,
    "json": JSON_FORMAT,
}


# Module-specific log levels
MODULE_LOG_LEVELS = {
    "ability_engine": "INFO",
    "ability_engine.execution": "INFO",
    "ability_engine.credentials": "INFO",
    "ability_engine.registry": "INFO",
    "ability_engine.sandbox": "INFO",
    "ability_engine.sandbox.code": "INFO",
    # Third-party libraries (reduce noise)
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "asyncio": "WARNING",
}


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure logging for an application that embeds the ability engine.

    Args:
        log_level: Override default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Override default format (simple, detailed, json)
        log_file: File name under ``ABILITY_ENGINE_LOG_DIR`` to also log to; no file logging when None
    """
    level = (log_level or LOG_LEVEL).upper()
    fmt = log_format or LOG_FORMAT
    formatter = logging.Formatter(FORMATS.get(fmt, DETAILED_FORMAT), datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels, filter at handler level

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_dir = Path(LOG_FILE_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / log_file)
        file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)
    if level == "DEBUG":
        logging.getLogger("ability_engine").setLevel(logging.DEBUG)
        for module_name in MODULE_LOG_LEVELS:
            if module_name.startswith("ability_engine"):
                logging.getLogger(module_name).setLevel(logging.DEBUG)

    root_logger.info("Logging configured: level=%s, format=%s, file=%s", level, fmt, log_file)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The module name (typically __name__)

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name)
