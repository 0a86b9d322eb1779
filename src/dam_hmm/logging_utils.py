"""Logging setup shared by the CLI, the pipeline and worker processes."""

from __future__ import annotations

import logging
from pathlib import Path

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "dam_hmm"
QUIET_LIBRARY_LOGGERS: tuple[str, ...] = ("hmmlearn",)


def quiet_library_loggers(level: int = logging.ERROR) -> None:
    """Raise third-party logger thresholds so per-fit notices stay out of run logs."""

    for name in QUIET_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def _formatted(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setFormatter(logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT))
    handler.setLevel(level)
    return handler


def configure_logging(log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """Route all records to the console and ``log_file``; returns the package logger."""

    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    root_logger.addHandler(_formatted(logging.StreamHandler(), level))
    root_logger.addHandler(_formatted(logging.FileHandler(log_file, encoding="utf-8"), level))
    quiet_library_loggers()

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    return logger


def configure_worker_logging(level: int) -> None:
    """Console-only logging for pool workers, in the parent's format."""

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.addHandler(_formatted(logging.StreamHandler(), level))
    root_logger.setLevel(level)
    quiet_library_loggers()
