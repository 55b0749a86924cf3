"""Logging for `gf`: terse stderr output plus an optional full debug log file."""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

LOGGER_NAME = "gitfleet"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/git-fleet/logs/gitfleet.log")
_FALLBACK_LOG_PATH = Path(".git-fleet/logs/gitfleet.log")
_FILE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s:%(lineno)d %(message)s"
_STREAM_FORMAT = "%(levelname)s %(name)s: %(message)s"


def default_log_path() -> Path:
    try:
        resolved = DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        resolved = (Path.cwd() / _FALLBACK_LOG_PATH).resolve()
    else:
        if not resolved.is_absolute():
            resolved = resolved.resolve()
    return resolved


def resolve_level(level: str) -> int:
    """Map a level name to its numeric value; unknown names mean WARNING."""
    return LOG_LEVELS.get(level.strip().upper(), py_logging.WARNING)


def _open_log_file(log_file: str | Path) -> py_logging.FileHandler | None:
    try:
        log_path = Path(log_file).expanduser()
    except RuntimeError:
        log_path = Path(log_file)
    if not log_path.is_absolute():
        log_path = log_path.resolve()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        return None
    file_handler.setLevel(py_logging.DEBUG)
    file_handler.setFormatter(py_logging.Formatter(_FILE_FORMAT))
    return file_handler


def configure_logging(
    level: str = "WARN",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """(Re)configure the ``gitfleet`` logger.

    The stream handler honours ``level``. When ``log_file`` can be opened it
    receives every record down to DEBUG regardless of ``level``.
    """
    resolved = resolve_level(level)

    logger = py_logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = py_logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(py_logging.Formatter(_STREAM_FORMAT))
    logger.addHandler(handler)

    file_handler = _open_log_file(log_file) if log_file else None
    if file_handler is not None:
        logger.addHandler(file_handler)
    logger.setLevel(py_logging.DEBUG if file_handler is not None else resolved)
    logger.propagate = False

    if log_file and file_handler is None:
        logger.warning("Cannot open log file %s; logging to stderr only", log_file)
    return logger
