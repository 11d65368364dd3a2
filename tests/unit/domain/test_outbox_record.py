"""Unit tests for OutboxRecord."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from signflow.domain.errors.audit import AppendOnlyViolationError
from signflow.domain.events.integration_event import (
    IntegrationEventType,
    OutboxRecord,
    OutboxStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(**kwargs) -> OutboxRecord:
    defaults = dict(
        id="evt-1",
        event_type=IntegrationEventType.SIGNER_DECLINED,
        envelope_id="env-1",
        payload={"signer_id": "s1", "reason": "terms unacceptable"},
        occurred_at=NOW,
        trace_id="trace-1",
    )
    defaults.update(kwargs)
    return OutboxRecord(**defaults)


class TestOutboxRecord:
    """Tests for OutboxRecord state and message shape."""

    def test_new_record_is_pending(self) -> None:
        """Records start PENDING with no attempts."""
        record = _record()
        assert record.status is OutboxStatus.PENDING
        assert record.attempts == 0

    def test_payload_is_frozen(self) -> None:
        """The payload cannot be mutated."""
        with pytest.raises(TypeError):
            _record().payload["reason"] = "changed"  # type: ignore[index]

    def test_unpublishable_payload_rejected(self) -> None:
        """Non-finite floats are rejected at construction."""
        with pytest.raises(ValueError):
            _record(payload={"amount": float("inf")})

    def test_message_shape(self) -> None:
        """to_message carries the event id consumers de-duplicate on."""
        message = _record().to_message()
        assert message == {
            "event_id": "evt-1",
            "event_type": "signer.declined",
            "envelope_id": "env-1",
            "occurred_at": NOW.isoformat(),
            "trace_id": "trace-1",
            "payload": {"signer_id": "s1", "reason": "terms unacceptable"},
        }

    def test_mark_dispatched(self) -> None:
        """Dispatch counts the attempt and clears the error."""
        record = _record().mark_failed_attempt("boom", 5).mark_dispatched(NOW)
        assert record.status is OutboxStatus.DISPATCHED
        assert record.attempts == 2
        assert record.last_error is None
        assert record.dispatched_at == NOW

    def test_failed_after_max_attempts(self) -> None:
        """The record becomes FAILED on the last allowed attempt."""
        record = _record()
        record = record.mark_failed_attempt("boom", 2)
        assert record.status is OutboxStatus.PENDING
        record = record.mark_failed_attempt("boom again", 2)
        assert record.status is OutboxStatus.FAILED
        assert record.attempts == 2
        assert record.last_error == "boom again"

    def test_records_cannot_be_deleted(self) -> None:
        """Outbox records are append-only."""
        with pytest.raises(AppendOnlyViolationError):
            _record().delete()
