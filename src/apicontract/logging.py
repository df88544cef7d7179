# apicontract/logging.py
"""
Logging setup for apicontract.

Library modules only ever do:
    from apicontract.logging import get_logger
    logger = get_logger(__name__)

The CLI entrypoint calls configure_logging() once. Nothing else configures
handlers, so embedding applications keep control of their own logging.
"""

from __future__ import annotations

import logging
import sys

DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

# Subsystem tags, prefixed to log messages so output stays greppable.
EXTRACT = "[EXTRACT]"
ROUTES = "[ROUTES]"
STORE = "[STORE]"
CACHE = "[CACHE]"
DIFF = "[DIFF]"
CLI = "[CLI]"


def configure_logging(
    level: int = logging.INFO,
    fmt: str = DEFAULT_FORMAT,
    stream=sys.stderr,
) -> None:
    """
    Configure the root handler.

    Safe to call more than once: a handler is only added if none exists.
    """
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(fmt))
        root.addHandler(handler)

    root.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
