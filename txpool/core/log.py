"""
Logging setup for scripts and applications embedding txpool.

Library modules only call ``logging.getLogger(__name__)``; handlers are the
embedding process's business. ``configure_logging`` is the one-liner for
scripts that have no logging setup of their own.
"""

import logging
import sys

from txpool.core.config import settings

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_handler: logging.Handler | None = None


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attach a single stdout handler to the root logger (once) and set its level."""
    global _handler
    root = logging.getLogger()
    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
        root.addHandler(_handler)
    lvl = level if level is not None else settings.LOG_LEVEL
    if isinstance(lvl, str):
        lvl = lvl.upper()
    root.setLevel(lvl)
    return root
