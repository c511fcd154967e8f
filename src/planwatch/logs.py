import logging
from typing import Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str], path: Optional[str]) -> logging.Handler:
    """
    Sends diagnostic logs to `path`. The terminal belongs to the dashboard, so
    without both a level and a path nothing is written anywhere.

    Returns the installed handler so the caller can remove it again.
    """
    root = logging.getLogger("planwatch")

    if not level or not path:
        handler: logging.Handler = logging.NullHandler()
    else:
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.setLevel(LEVELS[level])

    root.addHandler(handler)
    return handler


def remove_logging(handler: logging.Handler):
    logging.getLogger("planwatch").removeHandler(handler)
    handler.close()
