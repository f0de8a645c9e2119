"""Package logger for Claude Sessions.

Textual owns the terminal while the UI runs, so nothing is printed to
stderr by default.  :func:`setup_logging` attaches a file handler when the
CLI is asked for a log file.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger("claude_sessions")
logger.addHandler(logging.NullHandler())

_LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"


def setup_logging(path: Path | None = None, level: int = logging.INFO) -> None:
    """Send package logs to *path* at *level*.

    Calling this more than once replaces the previous file handler.
    """
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(level)
    if path is None:
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
