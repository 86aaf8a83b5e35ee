"""Logging setup: stdlib loggers rendered by rich on stderr."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "ghcli"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(name: str) -> int:
    try:
        return _LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown log level {name!r}, expected one of {', '.join(_LEVELS)}") from None


def configure_logging(level: str = "info", verbose: bool = False) -> logging.Logger:
    """Attach a single RichHandler to the ``ghcli`` logger.

    Safe to call more than once; the previous handler is replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else parse_level(level))
    logger.propagate = False
    return logger
