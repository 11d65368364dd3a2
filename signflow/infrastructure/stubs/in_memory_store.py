"""In-memory persistence stub for testing and development.

InMemorySigningStore holds envelopes, tokens, consents, audit chains,
outbox records and reminder counters in dicts. Units of work stage their
writes and apply them on commit:

- ``begin(envelope_id)`` holds a per-envelope asyncio.Lock for the whole
  unit of work, so two operations on the same envelope never interleave.
- Envelope saves carry an optimistic version check, so a writer that
  loaded an envelope outside the lock still cannot overwrite a newer one.
- A block that raises leaves the store untouched.

The store also implements the publisher-side outbox reader.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime

from signflow.domain.errors.audit import AuditChainBrokenError
from signflow.domain.errors.concurrent_modification import ConcurrentModificationError
from signflow.domain.events.audit_event import AuditEvent
from signflow.domain.events.integration_event import OutboxRecord, OutboxStatus
from signflow.domain.exceptions import ValidationError
from signflow.domain.models.consent import Consent
from signflow.domain.models.envelope import Envelope, EnvelopeStatus
from signflow.domain.models.invitation_token import InvitationToken
from signflow.domain.models.reminder_tracking import SignerReminderTracking


class InMemorySigningStore:
    """Committed state shared by all units of work.

    Attributes:
        envelopes: Committed envelopes by id.
        tokens: Committed tokens by id.
        consents: Committed consents by id.
        audit_events: Committed audit chains by envelope id, oldest first.
        outbox: Committed outbox records by id, in commit order.
        reminders: Committed reminder counters by (envelope_id, signer_id).
        commit_count: Number of successful commits.
    """

    def __init__(self) -> None:
        self.envelopes: dict[str, Envelope] = {}
        self.tokens: dict[str, InvitationToken] = {}
        self.consents: dict[str, Consent] = {}
        self.audit_events: dict[str, list[AuditEvent]] = {}
        self.outbox: dict[str, OutboxRecord] = {}
        self.reminders: dict[tuple[str, str], SignerReminderTracking] = {}
        self.commit_count = 0
        self._envelope_locks: dict[str, asyncio.Lock] = {}
        self._commit_lock = asyncio.Lock()

    def _lock_for(self, envelope_id: str) -> asyncio.Lock:
        lock = self._envelope_locks.get(envelope_id)
        if lock is None:
            lock = asyncio.Lock()
            self._envelope_locks[envelope_id] = lock
        return lock

    @asynccontextmanager
    async def begin(self, envelope_id: str | None = None) -> AsyncIterator[InMemoryUnitOfWork]:
        """Open a unit of work; commit on clean exit, discard on error.

        Args:
            envelope_id: Envelope to hold exclusively, or None.
        """
        lock = self._lock_for(envelope_id) if envelope_id is not None else None
        if lock is not None:
            await lock.acquire()
        try:
            uow = InMemoryUnitOfWork(self)
            try:
                yield uow
            except BaseException:
                await uow.rollback()
                raise
            await uow.commit()
        finally:
            if lock is not None:
                lock.release()

    # ------------------------------------------------------------------
    # Outbox reader
    # ------------------------------------------------------------------

    async def fetch_pending(
        self, limit: int, record_ids: list[str] | None = None
    ) -> list[OutboxRecord]:
        wanted = set(record_ids) if record_ids is not None else None
        pending = [
            record
            for record in self.outbox.values()
            if record.status is OutboxStatus.PENDING
            and (wanted is None or record.id in wanted)
        ]
        return pending[:limit]

    async def mark_dispatched(self, record_id: str, dispatched_at: datetime) -> bool:
        async with self._commit_lock:
            record = self.outbox.get(record_id)
            if record is None or record.status is not OutboxStatus.PENDING:
                return False
            self.outbox[record_id] = record.mark_dispatched(dispatched_at)
            return True

    async def mark_failed_attempt(self, record_id: str, error: str, max_attempts: int) -> None:
        async with self._commit_lock:
            record = self.outbox.get(record_id)
            if record is None or record.status is not OutboxStatus.PENDING:
                return
            self.outbox[record_id] = record.mark_failed_attempt(error, max_attempts)

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        self.envelopes.clear()
        self.tokens.clear()
        self.consents.clear()
        self.audit_events.clear()
        self.outbox.clear()
        self.reminders.clear()
        self.commit_count = 0


class InMemoryUnitOfWork:
    """Staged writes over an InMemorySigningStore."""

    def __init__(self, store: InMemorySigningStore) -> None:
        self._store = store
        self._loaded_versions: dict[str, int] = {}
        self._new_envelopes: dict[str, Envelope] = {}
        self._saved_envelopes: dict[str, Envelope] = {}
        self._tokens: dict[str, InvitationToken] = {}
        self._consents: dict[str, Consent] = {}
        self._audit: dict[str, list[AuditEvent]] = {}
        self._outbox: list[OutboxRecord] = []
        self._reminders: dict[tuple[str, str], SignerReminderTracking] = {}
        self._closed = False

        self.envelopes = _EnvelopeRepository(self)
        self.tokens = _TokenRepository(self)
        self.consents = _ConsentRepository(self)
        self.audit = _AuditRepository(self)
        self.outbox = _OutboxWriter(self)
        self.reminders = _ReminderRepository(self)

    async def commit(self) -> None:
        """Apply staged writes.

        Raises:
            ConcurrentModificationError: If a saved envelope moved since load.
        """
        if self._closed:
            return
        store = self._store
        async with store._commit_lock:
            for envelope_id, envelope in self._saved_envelopes.items():
                stored = store.envelopes.get(envelope_id)
                actual = stored.version if stored is not None else 0
                expected = self._loaded_versions.get(envelope_id, envelope.version)
                if actual != expected:
                    raise ConcurrentModificationError(envelope_id, expected, actual)
            for envelope_id in self._new_envelopes:
                if envelope_id in store.envelopes:
                    raise ValidationError(f"Envelope already exists: {envelope_id}")

            for envelope_id, envelope in self._new_envelopes.items():
                store.envelopes[envelope_id] = envelope
            for envelope_id, envelope in self._saved_envelopes.items():
                stored_version = store.envelopes[envelope_id].version
                store.envelopes[envelope_id] = replace(envelope, version=stored_version + 1)
            store.tokens.update(self._tokens)
            store.consents.update(self._consents)
            for envelope_id, events in self._audit.items():
                store.audit_events.setdefault(envelope_id, []).extend(events)
            for record in self._outbox:
                store.outbox[record.id] = record
            store.reminders.update(self._reminders)
            store.commit_count += 1
        self._closed = True

    async def rollback(self) -> None:
        """Discard staged writes."""
        self._closed = True


class _EnvelopeRepository:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def get(self, envelope_id: str) -> Envelope | None:
        uow = self._uow
        if envelope_id in uow._saved_envelopes:
            return uow._saved_envelopes[envelope_id]
        if envelope_id in uow._new_envelopes:
            return uow._new_envelopes[envelope_id]
        envelope = uow._store.envelopes.get(envelope_id)
        if envelope is not None:
            uow._loaded_versions.setdefault(envelope_id, envelope.version)
        return envelope

    async def add(self, envelope: Envelope) -> None:
        if envelope.id in self._uow._store.envelopes or envelope.id in self._uow._new_envelopes:
            raise ValidationError(f"Envelope already exists: {envelope.id}")
        self._uow._new_envelopes[envelope.id] = envelope

    async def save(self, envelope: Envelope) -> None:
        uow = self._uow
        if envelope.id in uow._new_envelopes:
            uow._new_envelopes[envelope.id] = envelope
            return
        uow._loaded_versions.setdefault(envelope.id, envelope.version)
        uow._saved_envelopes[envelope.id] = envelope

    async def list_by_owner(
        self,
        owner_id: str,
        status: EnvelopeStatus | None = None,
        limit: int = 25,
        before: tuple[datetime, str] | None = None,
    ) -> list[Envelope]:
        matches = [
            e
            for e in self._uow._store.envelopes.values()
            if e.owner_id == owner_id and (status is None or e.status is status)
        ]
        matches.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        if before is not None:
            matches = [e for e in matches if (e.created_at, e.id) < before]
        return matches[:limit]


class _TokenRepository:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    def _all(self) -> dict[str, InvitationToken]:
        merged = dict(self._uow._store.tokens)
        merged.update(self._uow._tokens)
        return merged

    async def get(self, token_id: str) -> InvitationToken | None:
        return self._all().get(token_id)

    async def get_by_hash(self, token_hash: str) -> InvitationToken | None:
        for token in self._all().values():
            if token.token_hash == token_hash:
                return token
        return None

    async def list_for_signer(self, envelope_id: str, signer_id: str) -> list[InvitationToken]:
        tokens = [
            t
            for t in self._all().values()
            if t.envelope_id == envelope_id and t.signer_id == signer_id
        ]
        return sorted(tokens, key=lambda t: t.created_at)

    async def list_for_envelope(self, envelope_id: str) -> list[InvitationToken]:
        tokens = [t for t in self._all().values() if t.envelope_id == envelope_id]
        return sorted(tokens, key=lambda t: t.created_at)

    async def save(self, token: InvitationToken) -> None:
        self._uow._tokens[token.id] = token


class _ConsentRepository:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def get(self, consent_id: str) -> Consent | None:
        return self._uow._consents.get(consent_id) or self._uow._store.consents.get(consent_id)

    async def get_latest_for_signer(self, envelope_id: str, signer_id: str) -> Consent | None:
        merged = dict(self._uow._store.consents)
        merged.update(self._uow._consents)
        matches = [
            c for c in merged.values() if c.envelope_id == envelope_id and c.signer_id == signer_id
        ]
        if not matches:
            return None
        return max(matches, key=lambda c: c.given_at)

    async def save(self, consent: Consent) -> None:
        self._uow._consents[consent.id] = consent


class _AuditRepository:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    def _chain(self, envelope_id: str) -> list[AuditEvent]:
        committed = self._uow._store.audit_events.get(envelope_id, [])
        return committed + self._uow._audit.get(envelope_id, [])

    async def get_head(self, envelope_id: str) -> AuditEvent | None:
        chain = self._chain(envelope_id)
        return chain[-1] if chain else None

    async def append(self, event: AuditEvent) -> None:
        head = await self.get_head(event.envelope_id)
        expected_sequence = 1 if head is None else head.sequence + 1
        expected_previous = None if head is None else head.id
        if event.sequence != expected_sequence or event.previous_event_id != expected_previous:
            raise AuditChainBrokenError(
                event.envelope_id,
                event.sequence,
                event.id,
                "event does not extend the current chain head",
            )
        self._uow._audit.setdefault(event.envelope_id, []).append(event)

    async def list_by_envelope(
        self,
        envelope_id: str,
        limit: int | None = None,
        after_sequence: int = 0,
    ) -> list[AuditEvent]:
        events = [e for e in self._chain(envelope_id) if e.sequence > after_sequence]
        return events if limit is None else events[:limit]


class _OutboxWriter:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def add(self, record: OutboxRecord) -> None:
        self._uow._outbox.append(record)


class _ReminderRepository:
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def get(self, envelope_id: str, signer_id: str) -> SignerReminderTracking | None:
        key = (envelope_id, signer_id)
        return self._uow._reminders.get(key) or self._uow._store.reminders.get(key)

    async def save(self, tracking: SignerReminderTracking) -> None:
        self._uow._reminders[(tracking.envelope_id, tracking.signer_id)] = tracking
