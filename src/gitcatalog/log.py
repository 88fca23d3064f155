"""Logging setup.

Every module logs through ``logging.getLogger(__name__)``; the CLI calls
:func:`setup_logging` once so records render through rich next to the
command output.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "gitcatalog"


def setup_logging(level: int | str = logging.INFO, console: Optional[Console] = None) -> logging.Logger:
    """Attach a single RichHandler to the package logger.

    ``GITCATALOG_LOG_LEVEL`` wins over the ``level`` argument. Calling this
    again replaces the previous handler instead of stacking a new one.
    """
    level = os.environ.get("GITCATALOG_LOG_LEVEL", level)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger
