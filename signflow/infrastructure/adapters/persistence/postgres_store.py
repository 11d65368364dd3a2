"""PostgreSQL signing store.

PostgresSigningStore opens units of work over one AsyncSession each, so
the envelope, token, consent, audit, reminder and outbox writes of an
operation commit or roll back together:

- ``begin(envelope_id)`` takes a transaction-scoped advisory lock on the
  envelope id, serializing units of work on the same envelope across
  processes.
- Envelope saves are staged and flushed at commit with an optimistic
  ``version`` check; a stale writer gets ConcurrentModificationError.
- Outbox rows go through ``PostgresOutboxRepository.insert`` on the same
  session, and the dispatch side delegates to that repository.

SQL Pattern:
    -- Optimistic envelope save
    UPDATE signflow_envelopes SET document = $1, version = version + 1
    WHERE id = $2 AND version = $3

    -- Audit chain head
    SELECT document FROM signflow_audit_events
    WHERE envelope_id = $1 ORDER BY sequence DESC LIMIT 1
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from signflow.domain.errors.audit import AuditChainBrokenError
from signflow.domain.errors.concurrent_modification import ConcurrentModificationError
from signflow.domain.events.audit_event import AuditEvent
from signflow.domain.events.integration_event import OutboxRecord
from signflow.domain.exceptions import ValidationError
from signflow.domain.models.consent import Consent
from signflow.domain.models.envelope import Envelope, EnvelopeStatus
from signflow.domain.models.invitation_token import InvitationToken
from signflow.domain.models.reminder_tracking import SignerReminderTracking
from signflow.infrastructure.adapters.persistence.mappers import (
    audit_event_from_document,
    audit_event_to_document,
    consent_from_document,
    consent_to_document,
    envelope_from_document,
    envelope_to_document,
    reminder_from_document,
    reminder_to_document,
    token_from_document,
    token_to_document,
)
from signflow.infrastructure.adapters.persistence.outbox_repository import (
    OUTBOX_PENDING_INDEX_DDL,
    OUTBOX_TABLE_DDL,
    PostgresOutboxRepository,
)

logger = get_logger()

SIGNING_SCHEMA_DDL = (
    """
    CREATE TABLE IF NOT EXISTS signflow_envelopes (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        status TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        version INTEGER NOT NULL,
        document JSONB NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_signflow_envelopes_owner
        ON signflow_envelopes (owner_id, created_at DESC, id DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS signflow_invitation_tokens (
        id TEXT PRIMARY KEY,
        token_hash TEXT NOT NULL UNIQUE,
        envelope_id TEXT NOT NULL,
        signer_id TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        document JSONB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS signflow_consents (
        id TEXT PRIMARY KEY,
        envelope_id TEXT NOT NULL,
        signer_id TEXT NOT NULL,
        given_at TIMESTAMPTZ NOT NULL,
        document JSONB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS signflow_audit_events (
        id TEXT PRIMARY KEY,
        envelope_id TEXT NOT NULL,
        sequence INTEGER NOT NULL,
        document JSONB NOT NULL,
        UNIQUE (envelope_id, sequence)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS signflow_reminders (
        envelope_id TEXT NOT NULL,
        signer_id TEXT NOT NULL,
        document JSONB NOT NULL,
        PRIMARY KEY (envelope_id, signer_id)
    )
    """,
    OUTBOX_TABLE_DDL,
    OUTBOX_PENDING_INDEX_DDL,
)


def _dumps(document: dict[str, Any]) -> str:
    return json.dumps(document, ensure_ascii=False, sort_keys=True)


def _loads(document: Any) -> dict[str, Any]:
    if isinstance(document, str):
        return json.loads(document)
    return dict(document)


class PostgresSigningStore:
    """UnitOfWorkFactoryProtocol and OutboxReaderProtocol on PostgreSQL.

    Attributes:
        _session_factory: SQLAlchemy async session factory for DB access.
        _outbox: Outbox repository serving the dispatch side.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the store.

        Args:
            session_factory: SQLAlchemy async session factory.
        """
        self._session_factory = session_factory
        self._outbox = PostgresOutboxRepository(session_factory)

    async def ensure_schema(self) -> None:
        """Create the signing tables and the outbox table if missing."""
        async with self._session_factory() as session:
            for statement in SIGNING_SCHEMA_DDL:
                await session.execute(text(statement))
            await session.commit()
        logger.info("signing_schema_ensured")

    @asynccontextmanager
    async def begin(
        self, envelope_id: str | None = None
    ) -> AsyncIterator[PostgresUnitOfWork]:
        """Open a unit of work; commit on clean exit, roll back on error.

        Args:
            envelope_id: Envelope to hold exclusively, or None.
        """
        async with self._session_factory() as session:
            if envelope_id is not None:
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                    {"key": f"signflow:envelope:{envelope_id}"},
                )
            uow = PostgresUnitOfWork(session)
            try:
                yield uow
            except BaseException:
                await uow.rollback()
                raise
            await uow.commit()

    async def fetch_pending(
        self, limit: int, record_ids: list[str] | None = None
    ) -> list[OutboxRecord]:
        return await self._outbox.fetch_pending(limit, record_ids)

    async def mark_dispatched(self, record_id: str, dispatched_at: datetime) -> bool:
        return await self._outbox.mark_dispatched(record_id, dispatched_at)

    async def mark_failed_attempt(self, record_id: str, error: str, max_attempts: int) -> None:
        await self._outbox.mark_failed_attempt(record_id, error, max_attempts)


class PostgresUnitOfWork:
    """Repositories bound to one session and transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._loaded_versions: dict[str, int] = {}
        self._new_envelopes: dict[str, Envelope] = {}
        self._saved_envelopes: dict[str, Envelope] = {}
        self._closed = False

        self.envelopes = _EnvelopeRepository(self)
        self.tokens = _TokenRepository(session)
        self.consents = _ConsentRepository(session)
        self.audit = _AuditRepository(session)
        self.outbox = _OutboxWriter(session)
        self.reminders = _ReminderRepository(session)

    async def commit(self) -> None:
        """Flush staged envelopes and commit the transaction.

        Raises:
            ConcurrentModificationError: If a saved envelope moved since load.
            ValidationError: If a new envelope id is already taken.
        """
        if self._closed:
            return
        try:
            for envelope in self._new_envelopes.values():
                await self._insert_envelope(envelope)
            for envelope_id, envelope in self._saved_envelopes.items():
                expected = self._loaded_versions.get(envelope_id, envelope.version)
                await self._update_envelope(envelope, expected)
            await self._session.commit()
        except BaseException:
            await self.rollback()
            raise
        self._closed = True

    async def rollback(self) -> None:
        """Roll back the transaction."""
        if self._closed:
            return
        self._closed = True
        await self._session.rollback()

    async def _insert_envelope(self, envelope: Envelope) -> None:
        result = await self._session.execute(
            text("""
                INSERT INTO signflow_envelopes (
                    id, owner_id, status, created_at, version, document
                ) VALUES (
                    :id, :owner_id, :status, :created_at, :version,
                    CAST(:document AS JSONB)
                )
                ON CONFLICT (id) DO NOTHING
            """),
            {
                "id": envelope.id,
                "owner_id": envelope.owner_id,
                "status": envelope.status.value,
                "created_at": envelope.created_at,
                "version": envelope.version,
                "document": _dumps(envelope_to_document(envelope)),
            },
        )
        if (result.rowcount or 0) == 0:
            raise ValidationError(f"Envelope already exists: {envelope.id}")

    async def _update_envelope(self, envelope: Envelope, expected: int) -> None:
        result = await self._session.execute(
            text("""
                UPDATE signflow_envelopes
                SET document = CAST(:document AS JSONB),
                    status = :status,
                    version = version + 1
                WHERE id = :id AND version = :expected
            """),
            {
                "id": envelope.id,
                "status": envelope.status.value,
                "expected": expected,
                "document": _dumps(envelope_to_document(envelope)),
            },
        )
        if (result.rowcount or 0) > 0:
            return
        current = await self._session.execute(
            text("SELECT version FROM signflow_envelopes WHERE id = :id"),
            {"id": envelope.id},
        )
        actual = current.scalar_one_or_none()
        raise ConcurrentModificationError(envelope.id, expected, actual or 0)


class _EnvelopeRepository:
    def __init__(self, uow: PostgresUnitOfWork) -> None:
        self._uow = uow

    async def get(self, envelope_id: str) -> Envelope | None:
        uow = self._uow
        if envelope_id in uow._saved_envelopes:
            return uow._saved_envelopes[envelope_id]
        if envelope_id in uow._new_envelopes:
            return uow._new_envelopes[envelope_id]
        result = await uow._session.execute(
            text("SELECT document, version FROM signflow_envelopes WHERE id = :id"),
            {"id": envelope_id},
        )
        row = result.fetchone()
        if row is None:
            return None
        uow._loaded_versions.setdefault(envelope_id, row.version)
        return envelope_from_document(_loads(row.document), row.version)

    async def add(self, envelope: Envelope) -> None:
        if envelope.id in self._uow._new_envelopes:
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
        clauses = ["owner_id = :owner_id"]
        params: dict[str, Any] = {"owner_id": owner_id, "limit": limit}
        if status is not None:
            clauses.append("status = :status")
            params["status"] = status.value
        if before is not None:
            clauses.append("(created_at, id) < (:before_at, :before_id)")
            params["before_at"], params["before_id"] = before
        result = await self._uow._session.execute(
            text(f"""
                SELECT document, version FROM signflow_envelopes
                WHERE {" AND ".join(clauses)}
                ORDER BY created_at DESC, id DESC
                LIMIT :limit
            """),
            params,
        )
        return [
            envelope_from_document(_loads(row.document), row.version)
            for row in result.fetchall()
        ]


class _TokenRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _one(self, where: str, params: dict[str, Any]) -> InvitationToken | None:
        result = await self._session.execute(
            text(f"SELECT document FROM signflow_invitation_tokens WHERE {where}"), params
        )
        row = result.fetchone()
        return token_from_document(_loads(row.document)) if row is not None else None

    async def _many(self, where: str, params: dict[str, Any]) -> list[InvitationToken]:
        result = await self._session.execute(
            text(f"""
                SELECT document FROM signflow_invitation_tokens
                WHERE {where}
                ORDER BY created_at, id
            """),
            params,
        )
        return [token_from_document(_loads(row.document)) for row in result.fetchall()]

    async def get(self, token_id: str) -> InvitationToken | None:
        return await self._one("id = :id", {"id": token_id})

    async def get_by_hash(self, token_hash: str) -> InvitationToken | None:
        return await self._one("token_hash = :token_hash", {"token_hash": token_hash})

    async def list_for_signer(self, envelope_id: str, signer_id: str) -> list[InvitationToken]:
        return await self._many(
            "envelope_id = :envelope_id AND signer_id = :signer_id",
            {"envelope_id": envelope_id, "signer_id": signer_id},
        )

    async def list_for_envelope(self, envelope_id: str) -> list[InvitationToken]:
        return await self._many("envelope_id = :envelope_id", {"envelope_id": envelope_id})

    async def save(self, token: InvitationToken) -> None:
        await self._session.execute(
            text("""
                INSERT INTO signflow_invitation_tokens (
                    id, token_hash, envelope_id, signer_id, created_at, document
                ) VALUES (
                    :id, :token_hash, :envelope_id, :signer_id, :created_at,
                    CAST(:document AS JSONB)
                )
                ON CONFLICT (id) DO UPDATE SET document = EXCLUDED.document
            """),
            {
                "id": token.id,
                "token_hash": token.token_hash,
                "envelope_id": token.envelope_id,
                "signer_id": token.signer_id,
                "created_at": token.created_at,
                "document": _dumps(token_to_document(token)),
            },
        )


class _ConsentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, consent_id: str) -> Consent | None:
        result = await self._session.execute(
            text("SELECT document FROM signflow_consents WHERE id = :id"), {"id": consent_id}
        )
        row = result.fetchone()
        return consent_from_document(_loads(row.document)) if row is not None else None

    async def get_latest_for_signer(self, envelope_id: str, signer_id: str) -> Consent | None:
        result = await self._session.execute(
            text("""
                SELECT document FROM signflow_consents
                WHERE envelope_id = :envelope_id AND signer_id = :signer_id
                ORDER BY given_at DESC
                LIMIT 1
            """),
            {"envelope_id": envelope_id, "signer_id": signer_id},
        )
        row = result.fetchone()
        return consent_from_document(_loads(row.document)) if row is not None else None

    async def save(self, consent: Consent) -> None:
        await self._session.execute(
            text("""
                INSERT INTO signflow_consents (
                    id, envelope_id, signer_id, given_at, document
                ) VALUES (
                    :id, :envelope_id, :signer_id, :given_at, CAST(:document AS JSONB)
                )
                ON CONFLICT (id) DO UPDATE SET document = EXCLUDED.document
            """),
            {
                "id": consent.id,
                "envelope_id": consent.envelope_id,
                "signer_id": consent.signer_id,
                "given_at": consent.given_at,
                "document": _dumps(consent_to_document(consent)),
            },
        )


class _AuditRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_head(self, envelope_id: str) -> AuditEvent | None:
        result = await self._session.execute(
            text("""
                SELECT document FROM signflow_audit_events
                WHERE envelope_id = :envelope_id
                ORDER BY sequence DESC
                LIMIT 1
            """),
            {"envelope_id": envelope_id},
        )
        row = result.fetchone()
        return audit_event_from_document(_loads(row.document)) if row is not None else None

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
        await self._session.execute(
            text("""
                INSERT INTO signflow_audit_events (id, envelope_id, sequence, document)
                VALUES (:id, :envelope_id, :sequence, CAST(:document AS JSONB))
            """),
            {
                "id": event.id,
                "envelope_id": event.envelope_id,
                "sequence": event.sequence,
                "document": _dumps(audit_event_to_document(event)),
            },
        )

    async def list_by_envelope(
        self,
        envelope_id: str,
        limit: int | None = None,
        after_sequence: int = 0,
    ) -> list[AuditEvent]:
        params: dict[str, Any] = {"envelope_id": envelope_id, "after": after_sequence}
        limit_clause = ""
        if limit is not None:
            limit_clause = "LIMIT :limit"
            params["limit"] = limit
        result = await self._session.execute(
            text(f"""
                SELECT document FROM signflow_audit_events
                WHERE envelope_id = :envelope_id AND sequence > :after
                ORDER BY sequence
                {limit_clause}
            """),
            params,
        )
        return [audit_event_from_document(_loads(row.document)) for row in result.fetchall()]


class _OutboxWriter:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, record: OutboxRecord) -> None:
        await PostgresOutboxRepository.insert(self._session, record)


class _ReminderRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, envelope_id: str, signer_id: str) -> SignerReminderTracking | None:
        result = await self._session.execute(
            text("""
                SELECT document FROM signflow_reminders
                WHERE envelope_id = :envelope_id AND signer_id = :signer_id
            """),
            {"envelope_id": envelope_id, "signer_id": signer_id},
        )
        row = result.fetchone()
        return reminder_from_document(_loads(row.document)) if row is not None else None

    async def save(self, tracking: SignerReminderTracking) -> None:
        await self._session.execute(
            text("""
                INSERT INTO signflow_reminders (envelope_id, signer_id, document)
                VALUES (:envelope_id, :signer_id, CAST(:document AS JSONB))
                ON CONFLICT (envelope_id, signer_id)
                DO UPDATE SET document = EXCLUDED.document
            """),
            {
                "envelope_id": tracking.envelope_id,
                "signer_id": tracking.signer_id,
                "document": _dumps(reminder_to_document(tracking)),
            },
        )
