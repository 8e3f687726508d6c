"""Logging setup for the takt command-line and MCP entry points."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

FORMAT = "%(name)s: %(message)s"


def setup_logging(level: int | str = logging.WARNING) -> logging.Logger:
    """Attach a single stderr handler to the ``takt`` logger.

    Safe to call more than once; later calls only change the level.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.WARNING)
    root = logging.getLogger("takt")
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter(FORMAT))
        root.addHandler(handler)
    return root
