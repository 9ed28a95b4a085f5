"""Logging configuration for the API server, workers and CLI.

Server logging writes to stdout and a file; CLI logging writes to stdout only.
The level comes from LOG_LEVEL (default: INFO).
"""

import logging
import sys
from pathlib import Path

from rukun.config import get_settings

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level() -> int:
    """Resolve the configured level name to a logging constant (default INFO)."""
    return LOG_LEVEL_MAP.get(get_settings().log_level.upper(), logging.INFO)


def _reset_root_logger(level: int) -> logging.Logger:
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    return root_logger


def setup_server_logging(log_file: str | None = None) -> None:
    """
    Configure root logger for the API server and Celery worker.

    Args:
        log_file: Path to log file (default: LOG_FILE setting)
    """
    log_path = Path(log_file or get_settings().log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    log_level = get_log_level()
    root_logger = _reset_root_logger(log_level)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)


def setup_cli_logging() -> logging.Logger:
    """Configure stdout-only logging for CLI job runs and return the CLI logger."""
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    log_level = get_log_level()
    root_logger = _reset_root_logger(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    return logging.getLogger("rukun.cli")


__all__ = ["setup_server_logging", "setup_cli_logging", "get_log_level"]
