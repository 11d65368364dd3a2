"""Unit tests for PostgresOutboxRepository with a mocked session."""

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from signflow.domain.events.integration_event import (
    IntegrationEventType,
    OutboxRecord,
    OutboxStatus,
)
from signflow.infrastructure.adapters.persistence.outbox_repository import (
    PostgresOutboxRepository,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def session() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def session_factory(session: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


def _row(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "id": "evt-1",
        "event_type": "envelope.completed",
        "envelope_id": "env-1",
        "payload": json.dumps({"signed_hash": "ab" * 32}),
        "occurred_at": NOW,
        "trace_id": "req-1",
        "status": "PENDING",
        "attempts": 1,
        "last_error": "TimeoutError: slow",
        "dispatched_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _sql(call: object) -> str:
    return str(call.args[0])  # type: ignore[attr-defined]


class TestFetchPending:
    """Tests for fetch_pending."""

    @pytest.mark.asyncio
    async def test_rows_mapped_to_records(
        self, session_factory: MagicMock, session: AsyncMock
    ) -> None:
        """Rows become OutboxRecords; JSON text payloads are decoded."""
        result = MagicMock()
        result.fetchall.return_value = [_row(), _row(id="evt-2", payload={"x": 1})]
        session.execute.return_value = result
        repo = PostgresOutboxRepository(session_factory)

        records = await repo.fetch_pending(10)

        assert [r.id for r in records] == ["evt-1", "evt-2"]
        first = records[0]
        assert first.event_type is IntegrationEventType.ENVELOPE_COMPLETED
        assert first.status is OutboxStatus.PENDING
        assert first.payload["signed_hash"] == "ab" * 32
        assert first.attempts == 1
        assert "ORDER BY occurred_at, id" in _sql(session.execute.call_args)
        assert session.execute.call_args.args[1] == {"limit": 10}

    @pytest.mark.asyncio
    async def test_restricted_to_ids(
        self, session_factory: MagicMock, session: AsyncMock
    ) -> None:
        """An id list narrows the query."""
        result = MagicMock()
        result.fetchall.return_value = []
        session.execute.return_value = result
        repo = PostgresOutboxRepository(session_factory)

        assert await repo.fetch_pending(2, record_ids=["evt-1", "evt-2"]) == []
        assert "id = ANY(:ids)" in _sql(session.execute.call_args)
        assert session.execute.call_args.args[1]["ids"] == ["evt-1", "evt-2"]


class TestMarking:
    """Tests for mark_dispatched and mark_failed_attempt."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("rowcount", "expected"), [(1, True), (0, False)])
    async def test_mark_dispatched(
        self,
        session_factory: MagicMock,
        session: AsyncMock,
        rowcount: int,
        expected: bool,
    ) -> None:
        """The result reports whether the row was still PENDING."""
        session.execute.return_value = MagicMock(rowcount=rowcount)
        repo = PostgresOutboxRepository(session_factory)
        assert await repo.mark_dispatched("evt-1", NOW) is expected
        assert "status = 'PENDING'" in _sql(session.execute.call_args)
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_failed_attempt_truncates_error(
        self, session_factory: MagicMock, session: AsyncMock
    ) -> None:
        """Errors are capped and the attempt limit is passed through."""
        repo = PostgresOutboxRepository(session_factory)
        await repo.mark_failed_attempt("evt-1", "x" * 5000, max_attempts=5)
        params = session.execute.call_args.args[1]
        assert len(params["error"]) == 1000
        assert params["max_attempts"] == 5
        assert "'FAILED'" in _sql(session.execute.call_args)
        session.commit.assert_awaited_once()


class TestSchemaAndInsert:
    """Tests for ensure_schema and insert."""

    @pytest.mark.asyncio
    async def test_ensure_schema(self, session_factory: MagicMock, session: AsyncMock) -> None:
        """Table and index DDL run in one committed session."""
        repo = PostgresOutboxRepository(session_factory)
        await repo.ensure_schema()
        statements = [_sql(c) for c in session.execute.call_args_list]
        assert "CREATE TABLE IF NOT EXISTS signflow_outbox" in statements[0]
        assert "ix_signflow_outbox_pending" in statements[1]
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_insert_uses_caller_session(self, session: AsyncMock) -> None:
        """insert writes canonical JSON and does not commit."""
        record = OutboxRecord(
            id="evt-1",
            event_type=IntegrationEventType.SIGNER_DECLINED,
            envelope_id="env-1",
            payload={"reason": "no", "signer_id": "s-1"},
            occurred_at=NOW,
        )
        await PostgresOutboxRepository.insert(session, record)
        params = session.execute.call_args.args[1]
        assert params["event_type"] == "signer.declined"
        assert json.loads(params["payload"]) == {"reason": "no", "signer_id": "s-1"}
        assert params["status"] == "PENDING"
        session.commit.assert_not_awaited()
