"""CLI utilities for running async operations and formatting output."""

from storage_guard.cli.utils.async_runner import coro
from storage_guard.cli.utils.formatters import (
    error,
    field,
    info,
    section,
    success,
    warning,
)

__all__ = [
    "coro",
    "error",
    "field",
    "info",
    "section",
    "success",
    "warning",
]
