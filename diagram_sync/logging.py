"""
Logging utilities for the diagram sync package.

Modules log through ``logging.getLogger(__name__)``; this module only
configures the package logger.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

# Package root logger
_root_logger = logging.getLogger("diagram_sync")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    level: str | int = "INFO",
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure logging for the diagram sync package.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL) or int
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to write logs
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or DEFAULT_FORMAT)

    stream_handler = logging.StreamHandler(stream or sys.stderr)
    stream_handler.setFormatter(formatter)
    _root_logger.addHandler(stream_handler)

    if file:
        file_handler = logging.FileHandler(file)
        file_handler.setFormatter(formatter)
        _root_logger.addHandler(file_handler)

    # Don't double-log through the root logger
    _root_logger.propagate = False
