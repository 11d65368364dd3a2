"""Audit event repository port.

Append-only. There is no update or delete operation.
"""

from __future__ import annotations

from typing import Protocol

from signflow.domain.events.audit_event import AuditEvent


class AuditEventRepositoryProtocol(Protocol):
    """Protocol for the per-envelope audit chain."""

    async def get_head(self, envelope_id: str) -> AuditEvent | None:
        """Latest event of the envelope's chain, including staged events."""
        ...

    async def append(self, event: AuditEvent) -> None:
        """Stage an event. It must extend the current head.

        Raises:
            AuditChainBrokenError: If the event does not link to the head.
        """
        ...

    async def list_by_envelope(
        self,
        envelope_id: str,
        limit: int | None = None,
        after_sequence: int = 0,
    ) -> list[AuditEvent]:
        """Events oldest first, starting after ``after_sequence``.

        Args:
            envelope_id: Envelope to list.
            limit: Maximum number of events, None for all.
            after_sequence: Keyset position.
        """
        ...
