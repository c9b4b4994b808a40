"""Shared utilities for Mirako."""

from mirako.core.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
