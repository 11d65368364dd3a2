"""Opaque keyset pagination cursors.

Cursors are base64url encoded so they can travel in URLs unchanged.
Envelope listings page on (created_at, envelope_id) newest first; audit
trails page on the per-envelope sequence number oldest first.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from signflow.domain.errors.pagination import InvalidPaginationCursorError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def _b64encode(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _b64decode(cursor: str) -> str:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidPaginationCursorError(cursor) from e


@dataclass(frozen=True)
class EnvelopeCursor:
    """Position after the last envelope of a page.

    Attributes:
        created_at: Creation time of the last envelope returned.
        envelope_id: Id of the last envelope returned (tie breaker).
    """

    created_at: datetime
    envelope_id: str

    def encode(self) -> str:
        # Format: created_at_micros|envelope_id
        micros = (self.created_at - _EPOCH) // _MICROSECOND
        return _b64encode(f"{micros}|{self.envelope_id}")

    @classmethod
    def decode(cls, cursor: str) -> EnvelopeCursor:
        """Decode a cursor string.

        Raises:
            InvalidPaginationCursorError: If the cursor cannot be parsed.
        """
        text = _b64decode(cursor)
        micros, sep, envelope_id = text.partition("|")
        if not sep or not envelope_id:
            raise InvalidPaginationCursorError(cursor)
        try:
            created_at = _EPOCH + timedelta(microseconds=int(micros))
        except (ValueError, OverflowError, OSError) as e:
            raise InvalidPaginationCursorError(cursor) from e
        return cls(created_at=created_at, envelope_id=envelope_id)

    def as_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.envelope_id)


@dataclass(frozen=True)
class AuditCursor:
    """Position after the last audit event of a page."""

    sequence: int

    def encode(self) -> str:
        return _b64encode(f"seq:{self.sequence}")

    @classmethod
    def decode(cls, cursor: str) -> AuditCursor:
        """Decode a cursor string.

        Raises:
            InvalidPaginationCursorError: If the cursor cannot be parsed.
        """
        text = _b64decode(cursor)
        prefix, sep, value = text.partition(":")
        if prefix != "seq" or not sep or not value.isdigit():
            raise InvalidPaginationCursorError(cursor)
        return cls(sequence=int(value))
