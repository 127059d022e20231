"""
Logging helpers.

Modules grab a named logger with ``get_logger(__name__)``; the host process
calls ``setup_logging`` once (normally with values from ``Config``).
"""

import logging
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=fmt or DEFAULT_FORMAT,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
