"""Logging setup for command-line use.

Library modules only create module loggers; handlers are installed here, once,
by the entry point.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


class ChildOutputFormatter(logging.Formatter):
    """Prefix lines forwarded from supervised processes with their source."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.name.startswith("proc."):
            return f"[{record.name[len('proc.'):]}] {message}"
        return message


def setup_logging(level: int | str = logging.INFO, console: Console | None = None) -> None:
    """Configure the root logger with a rich console handler.

    Existing root handlers are removed so repeated calls do not duplicate
    output.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(ChildOutputFormatter("%(message)s"))
    root_logger.addHandler(handler)
