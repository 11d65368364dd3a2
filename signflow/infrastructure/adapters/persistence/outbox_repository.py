"""PostgreSQL outbox repository.

Stores integration events in the ``signflow_outbox`` table and serves the
dispatch side: fetching PENDING rows in commit order, marking them
dispatched, and counting failed attempts.

``insert`` takes the caller's session so the row commits in the same
transaction as the envelope mutation it announces.

SQL Pattern:
    -- Fetch a batch
    SELECT ... FROM signflow_outbox
    WHERE status = 'PENDING' ORDER BY occurred_at, id LIMIT $1

    -- Mark dispatched (no-op unless still PENDING)
    UPDATE signflow_outbox SET status = 'DISPATCHED', ...
    WHERE id = $1 AND status = 'PENDING'
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from signflow.domain.events.hash_utils import canonical_json
from signflow.domain.events.integration_event import (
    IntegrationEventType,
    OutboxRecord,
    OutboxStatus,
)

logger = get_logger()

OUTBOX_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS signflow_outbox (
    id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    envelope_id TEXT NOT NULL,
    payload JSONB NOT NULL,
    occurred_at TIMESTAMPTZ NOT NULL,
    trace_id TEXT,
    status TEXT NOT NULL DEFAULT 'PENDING',
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    dispatched_at TIMESTAMPTZ
)
"""

OUTBOX_PENDING_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS ix_signflow_outbox_pending
    ON signflow_outbox (occurred_at, id) WHERE status = 'PENDING'
"""

_SELECT_COLUMNS = """
    id, event_type, envelope_id, payload, occurred_at, trace_id,
    status, attempts, last_error, dispatched_at
"""


def _row_to_record(row: Any) -> OutboxRecord:
    payload = row.payload
    if isinstance(payload, str):
        payload = json.loads(payload)
    return OutboxRecord(
        id=row.id,
        event_type=IntegrationEventType(row.event_type),
        envelope_id=row.envelope_id,
        payload=payload,
        occurred_at=row.occurred_at,
        trace_id=row.trace_id,
        status=OutboxStatus(row.status),
        attempts=row.attempts,
        last_error=row.last_error,
        dispatched_at=row.dispatched_at,
    )


class PostgresOutboxRepository:
    """OutboxReaderProtocol implementation on PostgreSQL.

    Attributes:
        _session_factory: SQLAlchemy async session factory for DB access.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize the repository.

        Args:
            session_factory: SQLAlchemy async session factory.
        """
        self._session_factory = session_factory

    async def ensure_schema(self) -> None:
        """Create the outbox table and its pending index if missing."""
        async with self._session_factory() as session:
            await session.execute(text(OUTBOX_TABLE_DDL))
            await session.execute(text(OUTBOX_PENDING_INDEX_DDL))
            await session.commit()
        logger.info("outbox_schema_ensured")

    @staticmethod
    async def insert(session: AsyncSession, record: OutboxRecord) -> None:
        """Stage an outbox row in the caller's transaction."""
        await session.execute(
            text("""
                INSERT INTO signflow_outbox (
                    id, event_type, envelope_id, payload, occurred_at,
                    trace_id, status, attempts
                ) VALUES (
                    :id, :event_type, :envelope_id, CAST(:payload AS JSONB),
                    :occurred_at, :trace_id, :status, :attempts
                )
            """),
            {
                "id": record.id,
                "event_type": record.event_type.value,
                "envelope_id": record.envelope_id,
                "payload": canonical_json(dict(record.payload)),
                "occurred_at": record.occurred_at,
                "trace_id": record.trace_id,
                "status": record.status.value,
                "attempts": record.attempts,
            },
        )

    async def fetch_pending(
        self, limit: int, record_ids: list[str] | None = None
    ) -> list[OutboxRecord]:
        """Fetch PENDING rows oldest first, optionally restricted to ids."""
        async with self._session_factory() as session:
            if record_ids is None:
                result = await session.execute(
                    text(f"""
                        SELECT {_SELECT_COLUMNS}
                        FROM signflow_outbox
                        WHERE status = 'PENDING'
                        ORDER BY occurred_at, id
                        LIMIT :limit
                    """),
                    {"limit": limit},
                )
            else:
                result = await session.execute(
                    text(f"""
                        SELECT {_SELECT_COLUMNS}
                        FROM signflow_outbox
                        WHERE status = 'PENDING' AND id = ANY(:ids)
                        ORDER BY occurred_at, id
                        LIMIT :limit
                    """),
                    {"limit": limit, "ids": list(record_ids)},
                )
            return [_row_to_record(row) for row in result.fetchall()]

    async def mark_dispatched(self, record_id: str, dispatched_at: datetime) -> bool:
        """Mark a row DISPATCHED. Returns False if it was no longer PENDING."""
        async with self._session_factory() as session:
            result = await session.execute(
                text("""
                    UPDATE signflow_outbox
                    SET status = 'DISPATCHED',
                        attempts = attempts + 1,
                        dispatched_at = :dispatched_at,
                        last_error = NULL
                    WHERE id = :id AND status = 'PENDING'
                """),
                {"id": record_id, "dispatched_at": dispatched_at},
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def mark_failed_attempt(self, record_id: str, error: str, max_attempts: int) -> None:
        """Count a failed attempt; the row becomes FAILED at max_attempts."""
        async with self._session_factory() as session:
            await session.execute(
                text("""
                    UPDATE signflow_outbox
                    SET attempts = attempts + 1,
                        last_error = :error,
                        status = CASE
                            WHEN attempts + 1 >= :max_attempts THEN 'FAILED'
                            ELSE 'PENDING'
                        END
                    WHERE id = :id AND status = 'PENDING'
                """),
                {"id": record_id, "error": error[:1000], "max_attempts": max_attempts},
            )
            await session.commit()
