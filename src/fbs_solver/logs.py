"""Logging setup for scripts and notebooks."""

import logging
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "fbs_solver"


def setup_logging(level: Union[int, str] = "INFO", console: Console = None) -> logging.Logger:
    """
    Send the package log records to a rich console handler.

    Calling it again replaces the handler installed before, so the level can
    be changed at any time.

    Parameters
    ----------
    level : int or str
        Log level, e.g. ``"DEBUG"`` or ``logging.INFO``.
    console : rich.console.Console, optional
        Console to write to (stderr by default).

    Returns
    -------
    logger : logging.Logger
        The package logger.
    """
    if isinstance(level, str):
        level = level.upper()
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(console=console or Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
