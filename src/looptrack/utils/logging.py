"""Logging for looptrack.

Everything logs under the ``looptrack`` logger. The CLI calls
``setup_logging`` once per invocation with the directory from
``LooptrackConfig.log_path``.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "looptrack"
LOG_FILE = "looptrack.log"
ERROR_LOG_FILE = "error.log"

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    return handler


def setup_logging(level: str, log_dir: Path, console: bool = True) -> logging.Logger:
    """Route looptrack logs to stderr (rich) and to files in ``log_dir``.

    Calling it again replaces the handlers from the previous call.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    if console:
        logger.addHandler(RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        ))

    logger.addHandler(_file_handler(log_dir / LOG_FILE, logging.INFO))
    logger.addHandler(_file_handler(log_dir / ERROR_LOG_FILE, logging.ERROR))

    # watchdog logs every inotify event at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    return logger


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    return logging.getLogger(name)
