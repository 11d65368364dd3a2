"""Outbox records for integration events.

An OutboxRecord is written in the same unit of work as the mutation it
announces. Domain code only creates records; the publisher alone moves
them to DISPATCHED or FAILED.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

from signflow.domain.events.hash_utils import canonical_json
from signflow.domain.exceptions import ValidationError
from signflow.domain.primitives import DeletePreventionMixin


class IntegrationEventType(Enum):
    """Event names published to external consumers."""

    ENVELOPE_INVITATION = "envelope.invitation"
    ENVELOPE_VIEWER_INVITATION = "envelope.viewer_invitation"
    SIGNER_REMINDER = "signer.reminder"
    SIGNER_SIGNED = "signer.signed"
    SIGNER_DECLINED = "signer.declined"
    ENVELOPE_COMPLETED = "envelope.completed"
    ENVELOPE_CANCELLED = "envelope.cancelled"


class OutboxStatus(Enum):
    """Dispatch status of an outbox record."""

    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"
    FAILED = "FAILED"


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OutboxRecord(DeletePreventionMixin):
    """A staged integration event.

    Attributes:
        id: Event id; consumers de-duplicate on it.
        event_type: Published event name.
        envelope_id: Envelope the event is about.
        payload: JSON-serializable payload (frozen mapping).
        occurred_at: When the announced mutation happened.
        trace_id: Correlation id of the originating request.
        status: PENDING, DISPATCHED or FAILED.
        attempts: Dispatch attempts so far.
        last_error: Error message of the last failed attempt.
        dispatched_at: When the record was published.
    """

    id: str
    event_type: IntegrationEventType
    envelope_id: str
    payload: MappingProxyType[str, Any] | dict[str, Any]
    occurred_at: datetime = field(default_factory=_utc_now)
    trace_id: str | None = None
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    dispatched_at: datetime | None = None

    def __post_init__(self) -> None:
        if isinstance(self.payload, dict):
            # canonical_json raises on values that cannot be published
            canonical_json(self.payload)
            object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
        elif not isinstance(self.payload, MappingProxyType):
            raise ValidationError(
                f"Outbox payload must be dict, got {type(self.payload).__name__}"
            )

    def __hash__(self) -> int:
        return hash(self.id)

    def to_message(self) -> dict[str, Any]:
        """Envelope sent to the event bus. Stable across retries."""
        return {
            "event_id": self.id,
            "event_type": self.event_type.value,
            "envelope_id": self.envelope_id,
            "occurred_at": self.occurred_at.isoformat(),
            "trace_id": self.trace_id,
            "payload": dict(self.payload),
        }

    def mark_dispatched(self, now: datetime | None = None) -> OutboxRecord:
        return replace(
            self,
            status=OutboxStatus.DISPATCHED,
            attempts=self.attempts + 1,
            dispatched_at=now or _utc_now(),
            last_error=None,
        )

    def mark_failed_attempt(self, error: str, max_attempts: int) -> OutboxRecord:
        """Count a failed attempt. FAILED once max_attempts is reached."""
        attempts = self.attempts + 1
        status = OutboxStatus.FAILED if attempts >= max_attempts else OutboxStatus.PENDING
        return replace(self, attempts=attempts, last_error=error[:1000], status=status)
