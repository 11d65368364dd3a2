"""Pagination errors."""

from __future__ import annotations

from signflow.domain.exceptions import ValidationError


class InvalidPaginationCursorError(ValidationError):
    """Raised when an opaque cursor cannot be decoded."""

    code = "INVALID_PAGINATION_CURSOR"

    def __init__(self, cursor: str) -> None:
        self.cursor = cursor
        super().__init__(f"Invalid pagination cursor: {cursor!r}")
