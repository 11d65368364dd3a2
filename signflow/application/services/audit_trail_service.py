"""Audit trail service.

Appends hash-chained audit events inside the caller's unit of work and
serves the trail back with keyset pagination. Appends happen inside the
transaction so the chain stays linear under the per-envelope lock.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from uuid6 import uuid7

from signflow.application.dtos.signing import AuditTrailPage
from signflow.application.ports.unit_of_work import (
    UnitOfWorkFactoryProtocol,
    UnitOfWorkProtocol,
)
from signflow.application.services.base import LoggingMixin
from signflow.domain.events.audit_event import AuditEvent, AuditEventType
from signflow.domain.models.network_context import ActorContext
from signflow.domain.models.page_cursor import AuditCursor
from signflow.domain.services.audit_chain_verifier import verify_audit_chain


class AuditTrailService(LoggingMixin):
    """Writes and reads the per-envelope audit chain."""

    def __init__(self, uow_factory: UnitOfWorkFactoryProtocol) -> None:
        self._uow_factory = uow_factory
        self._init_logger(component="audit")

    async def record(
        self,
        uow: UnitOfWorkProtocol,
        envelope_id: str,
        event_type: AuditEventType,
        description: str,
        actor: ActorContext,
        signer_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        occurred_at: datetime | None = None,
    ) -> AuditEvent:
        """Append the next event of an envelope's chain.

        Args:
            uow: Unit of work holding the envelope.
            envelope_id: Envelope the event belongs to.
            event_type: Kind of transition.
            description: Human-readable description.
            actor: Acting principal and network context.
            signer_id: Signer involved, if any.
            metadata: Structured details.
            occurred_at: Event time, defaults to now.

        Returns:
            The staged AuditEvent.
        """
        head = await uow.audit.get_head(envelope_id)
        event = AuditEvent.create_with_hash(
            event_id=str(uuid7()),
            envelope_id=envelope_id,
            event_type=event_type,
            description=description,
            actor=actor.audit_identity,
            occurred_at=occurred_at or datetime.now(timezone.utc),
            previous=head,
            signer_id=signer_id,
            network=actor.network.to_dict(),
            metadata=metadata,
        )
        await uow.audit.append(event)
        self._log_operation(
            "record", envelope_id=envelope_id, signer_id=signer_id
        ).debug(
            "audit_event_staged",
            event_type=event_type.value,
            sequence=event.sequence,
        )
        return event

    async def list_page(
        self,
        uow: UnitOfWorkProtocol,
        envelope_id: str,
        limit: int,
        cursor: str | None = None,
    ) -> AuditTrailPage:
        """Page through an envelope's events oldest first.

        Raises:
            InvalidPaginationCursorError: If the cursor cannot be decoded.
        """
        after = AuditCursor.decode(cursor).sequence if cursor else 0
        events = await uow.audit.list_by_envelope(envelope_id, limit=limit + 1, after_sequence=after)
        next_cursor = None
        if len(events) > limit:
            events = events[:limit]
            next_cursor = AuditCursor(events[-1].sequence).encode()
        return AuditTrailPage(events=events, next_cursor=next_cursor)

    async def verify(self, envelope_id: str) -> int:
        """Recompute an envelope's whole chain.

        Returns:
            Number of events verified.

        Raises:
            AuditChainBrokenError: On the first event that does not verify.
        """
        log = self._log_operation("verify", envelope_id=envelope_id)
        async with self._uow_factory.begin() as uow:
            events = await uow.audit.list_by_envelope(envelope_id)
        try:
            count = verify_audit_chain(envelope_id, events)
        except Exception as e:
            log.error("audit_chain_broken", error=str(e), error_type=type(e).__name__)
            raise
        log.info("audit_chain_verified", event_count=count)
        return count
