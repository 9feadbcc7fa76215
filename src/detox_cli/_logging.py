"""Logging for the detox CLI, driven by Detox's own log level names."""

from __future__ import annotations

import logging
import os

LOGLEVEL_ENV = "DETOX_CLI_LOG_LEVEL"
DEFAULT_LOGLEVEL = "info"

_HANDLER_ATTR = "_detox_cli_handler"
_FORMAT = "detox[%(process)d] %(levelname)s: [%(name)s] %(message)s"

# "verbose" and "trace" both collapse into DEBUG.
DETOX_LEVELS: dict[str, int] = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "verbose": logging.DEBUG,
    "trace": logging.DEBUG,
}


def resolve_level(loglevel: str | None = None) -> int:
    """Stdlib level for a Detox level name.

    *loglevel* wins over ``DETOX_CLI_LOG_LEVEL``; names that are unset or not
    Detox levels fall through to ``info``.
    """
    for candidate in (loglevel, os.environ.get(LOGLEVEL_ENV)):
        name = (candidate or "").strip().lower()
        if name in DETOX_LEVELS:
            return DETOX_LEVELS[name]
    return DETOX_LEVELS[DEFAULT_LOGLEVEL]


def _cli_handler(logger: logging.Logger) -> logging.Handler:
    for handler in logger.handlers:
        if getattr(handler, _HANDLER_ATTR, False):
            return handler
    handler = logging.StreamHandler()
    setattr(handler, _HANDLER_ATTR, True)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return handler


def setup_logging(loglevel: str | None = None) -> int:
    """Point the ``detox`` logger at stderr with the level named by *loglevel*.

    Safe to call repeatedly: the first call installs the handler and later
    calls only move the level. Returns the stdlib level in effect.
    """
    level = resolve_level(loglevel)
    logger = logging.getLogger("detox")
    _cli_handler(logger).setLevel(level)
    logger.setLevel(level)
    return level
