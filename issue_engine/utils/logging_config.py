"""
Engine logging: a coloured stderr stream plus one dated file per day
(engine_YYYYMMDD.log) under ENGINE_LOG_DIR.
"""
import logging
import os
import sys
from datetime import datetime
from typing import Optional, Union

from issue_engine.core import config

LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Named loggers set to the root level and propagated
ENGINE_LOGGERS = ("issue_engine", "main", "uvicorn", "uvicorn.error", "uvicorn.access")

_LEVEL_COLOURS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[31;1m",
}
_RESET = "\x1b[0m"


class ColoredFormatter(logging.Formatter):
    """Wraps each formatted line in the colour of its level."""

    def __init__(self):
        super().__init__(LINE_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record):
        line = super().format(record)
        colour = _LEVEL_COLOURS.get(record.levelno)
        return f"{colour}{line}{_RESET}" if colour else line


def log_file_path(log_dir: str, day: Optional[datetime] = None) -> str:
    return os.path.join(log_dir, f"engine_{(day or datetime.now()).strftime('%Y%m%d')}.log")


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ColoredFormatter())
    return handler


def _file_handler(log_dir: str) -> logging.Handler:
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(log_file_path(log_dir), encoding="utf-8")
    handler.setFormatter(logging.Formatter(LINE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(level: Union[int, str, None] = None, log_dir: Optional[str] = None) -> str:
    """
    Replace the root handlers with the engine's console and file handlers.

    level defaults to ENGINE_LOG_LEVEL and log_dir to ENGINE_LOG_DIR.
    Calling it again swaps the handlers instead of stacking them.
    Returns the log file path.
    """
    level = level if level is not None else config.ENGINE_LOG_LEVEL
    log_dir = log_dir or config.ENGINE_LOG_DIR

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(level)
    root.addHandler(_console_handler())
    root.addHandler(_file_handler(log_dir))

    for name in ENGINE_LOGGERS:
        named = logging.getLogger(name)
        named.setLevel(level)
        named.propagate = True

    path = os.path.abspath(log_file_path(log_dir))
    root.info("Engine log file: %s", path)
    return path
