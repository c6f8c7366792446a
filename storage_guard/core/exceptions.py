"""Base exception class for storage-guard errors."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions inherit from this class.

    Attributes:
        status_code: HTTP status code equivalent of the error.
        detail: Human-readable error message.
        type: Error type identifier (e.g. ``storage-not-found``).
        extra: Additional context-specific information about the error.

    Example:
        raise AppException(
            status_code=404,
            detail="Object not found",
            type="storage-not-found",
            extra={"key": "reports/q1.pdf", "bucket": "uploads"},
        )
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            status_code: HTTP status code.
            detail: Human-readable error message.
            type: Error type identifier.
            extra: Additional context about the error.
        """
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.extra = extra or {}
        super().__init__(detail)
