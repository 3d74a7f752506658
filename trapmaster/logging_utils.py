"""Logging setup for the CLI and scripts.

Library modules only call `logging.getLogger(__name__)` under the "trapmaster"
namespace. Entry points call `setup_logging` once to route those records to a
rich console handler.
"""
from __future__ import annotations

import logging
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "trapmaster"


def setup_logging(level: Union[int, str] = "INFO", console: Optional[Console] = None) -> logging.Logger:
    """Attach a rich handler to the package logger (idempotent).

    Library modules only create loggers; the CLI and scripts call this once.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False
    return logger
