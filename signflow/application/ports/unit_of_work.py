"""Unit of work port.

A unit of work groups the envelope, signer, token, consent, audit and
outbox writes of one operation. ``begin(envelope_id)`` serializes units of
work on the same envelope; the context manager commits on a clean exit
and discards staged writes when the block raises.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from signflow.application.ports.audit_event_repository import AuditEventRepositoryProtocol
from signflow.application.ports.consent_repository import ConsentRepositoryProtocol
from signflow.application.ports.envelope_repository import EnvelopeRepositoryProtocol
from signflow.application.ports.invitation_token_repository import (
    InvitationTokenRepositoryProtocol,
)
from signflow.application.ports.outbox import OutboxWriterProtocol
from signflow.application.ports.reminder_tracking_repository import (
    ReminderTrackingRepositoryProtocol,
)


class UnitOfWorkProtocol(Protocol):
    """Transactional view over all repositories."""

    envelopes: EnvelopeRepositoryProtocol
    tokens: InvitationTokenRepositoryProtocol
    consents: ConsentRepositoryProtocol
    audit: AuditEventRepositoryProtocol
    outbox: OutboxWriterProtocol
    reminders: ReminderTrackingRepositoryProtocol

    async def commit(self) -> None:
        """Apply staged writes atomically.

        Raises:
            ConcurrentModificationError: If an optimistic check fails.
        """
        ...

    async def rollback(self) -> None:
        """Discard staged writes."""
        ...


class UnitOfWorkFactoryProtocol(Protocol):
    """Opens units of work."""

    def begin(
        self, envelope_id: str | None = None
    ) -> AbstractAsyncContextManager[UnitOfWorkProtocol]:
        """Open a unit of work, exclusive per envelope when an id is given."""
        ...
