"""
Console logging for atomcache.

Library modules log through ``get_logger(__name__)`` and never
configure handlers themselves. Applications, including the CLI, call
setup_logging() to get rich console output.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "atomcache"

_console: Console | None = None


def get_console() -> Console:
    """Get the console log output is written to."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(log_level: str = "WARNING") -> logging.Logger:
    """Set up rich console logging for the atomcache package.

    Calling it again replaces the handler instead of adding another one.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The package logger.
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger(PACKAGE_LOGGER)
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        if isinstance(handler, RichHandler):
            root_logger.removeHandler(handler)

    rich_handler = RichHandler(
        console=get_console(),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    rich_handler.setLevel(level)
    root_logger.addHandler(rich_handler)
    root_logger.propagate = False

    # aiohttp logs every connection at debug level
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the atomcache namespace.

    Args:
        name: Logger name (usually __name__).
    """
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
