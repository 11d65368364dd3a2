"""Outbox ports.

The writer side lives on the unit of work so outbox rows commit together
with the mutation they announce. The reader side is used by the publisher
only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from signflow.domain.events.integration_event import OutboxRecord


class OutboxWriterProtocol(Protocol):
    """Stages outbox records inside a unit of work."""

    async def add(self, record: OutboxRecord) -> None:
        """Stage a new PENDING record."""
        ...


class OutboxReaderProtocol(Protocol):
    """Publisher-side access to staged records."""

    async def fetch_pending(
        self, limit: int, record_ids: list[str] | None = None
    ) -> list[OutboxRecord]:
        """PENDING records in commit order.

        Args:
            limit: Maximum number of records.
            record_ids: Restrict to these ids, for immediate dispatch.
        """
        ...

    async def mark_dispatched(self, record_id: str, dispatched_at: datetime) -> bool:
        """Mark a record DISPATCHED.

        Returns:
            False if the record was no longer PENDING (already handled).
        """
        ...

    async def mark_failed_attempt(self, record_id: str, error: str, max_attempts: int) -> None:
        """Count a failed attempt; the record becomes FAILED at max_attempts."""
        ...
