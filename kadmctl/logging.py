"""Logging configuration for the kadmctl package."""
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from kadmctl.config import Config


def setup_logger(
    name: Optional[str] = None,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    max_size_mb: int = 100,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Set up a logger with the specified name and log level.

    Args:
        name: The name of the logger (None for the root logger)
        level: The logging level (default: logging.INFO)
        log_file: Optional path of a rotating log file
        max_size_mb: Maximum log file size in MB before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    formatter = logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    # Don't add handlers if they're already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    else:
        for handler in logger.handlers:
            handler.setLevel(level)

    if log_file and not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        path = Path(log_file).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def redact(data):
    """Recursively redact sensitive values before they reach a log line."""
    if isinstance(data, dict):
        return {
            k: "[REDACTED]" if any(key in k.lower() for key in Config.REDACT_KEYS) else redact(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact(item) for item in data]
    return data


_SECRET_FLAG = re.compile(
    r"(?<!\S)(--?[\w-]*(?:" + "|".join(re.escape(key) for key in Config.REDACT_KEYS) + r")[\w-]*)"
    r"(=|\s+)(?!-)('[^']*'|\S+)",
    re.IGNORECASE
)


def redact_command(command: str) -> str:
    """Mask the values of password, token and key flags of a shell command."""
    return _SECRET_FLAG.sub(r"\1\2[REDACTED]", command)
