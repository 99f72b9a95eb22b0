"""
Logging setup shared by every cartsync module.

A host application that already installed root handlers keeps its own
configuration; otherwise cartsync writes to stdout at LOG_LEVEL.
"""

import logging
import os
import sys
from functools import cache

_FORMATS = {
    "production": "%(levelname)s %(name)s: %(message)s",
    "development": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
}

# One HTTP request per cart mutation would flood the log
_QUIET = ("httpx", "httpcore")

_MAX_ID_LENGTH = 24
_CONTROL_CHARS = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def _setup() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    env = os.environ.get("CARTSYNC_ENV", "development")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMATS.get(env, _FORMATS["development"])))
    root.addHandler(handler)
    root.setLevel(getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO))

    for name in _QUIET:
        logging.getLogger(name).setLevel(logging.WARNING)


_setup()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(value) -> str:
    """Product ids and color names come from page markup: escape and clip them."""
    if not value:
        return "N/A"
    return str(value).translate(_CONTROL_CHARS)[:_MAX_ID_LENGTH]
