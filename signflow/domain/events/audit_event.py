"""Audit event entity.

Audit events are immutable, append-only records of every state transition
of an envelope. Each event is linked to the one before it for the same
envelope by both ``previous_event_id`` and ``previous_hash``, and its own
``content_hash`` covers its content plus ``previous_hash``.

Note: DeletePreventionMixin ensures `.delete()` raises
AppendOnlyViolationError before any storage interaction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from signflow.domain.events.hash_utils import compute_content_hash, link_hash
from signflow.domain.exceptions import ValidationError
from signflow.domain.primitives import DeletePreventionMixin


class AuditEventType(Enum):
    """Kinds of envelope history entries."""

    ENVELOPE_CREATED = "ENVELOPE_CREATED"
    ENVELOPE_UPDATED = "ENVELOPE_UPDATED"
    SIGNER_ADDED = "SIGNER_ADDED"
    SIGNER_REMOVED = "SIGNER_REMOVED"
    ENVELOPE_SENT = "ENVELOPE_SENT"
    INVITATION_ISSUED = "INVITATION_ISSUED"
    INVITATION_REVOKED = "INVITATION_REVOKED"
    VIEWER_INVITED = "VIEWER_INVITED"
    DOCUMENT_ACCESSED = "DOCUMENT_ACCESSED"
    DOCUMENT_DOWNLOADED = "DOCUMENT_DOWNLOADED"
    CONSENT_GIVEN = "CONSENT_GIVEN"
    SIGNER_SIGNED = "SIGNER_SIGNED"
    SIGNER_DECLINED = "SIGNER_DECLINED"
    SIGNER_REMINDER_SENT = "SIGNER_REMINDER_SENT"
    ENVELOPE_COMPLETED = "ENVELOPE_COMPLETED"
    ENVELOPE_DECLINED = "ENVELOPE_DECLINED"
    ENVELOPE_CANCELLED = "ENVELOPE_CANCELLED"


@dataclass(frozen=True, eq=True)
class AuditEvent(DeletePreventionMixin):
    """One hash-chained entry in an envelope's history.

    Attributes:
        id: Event identifier.
        envelope_id: Envelope this event belongs to.
        sequence: 1-based position in the envelope's chain.
        event_type: Kind of transition recorded.
        description: Human-readable description.
        actor: Identity of the acting principal.
        occurred_at: When the transition happened.
        previous_hash: content_hash of the preceding event, or GENESIS_HASH.
        content_hash: SHA-256 over this event's content and previous_hash.
        signer_id: Signer involved, if any.
        previous_event_id: Id of the preceding event, None for sequence 1.
        network: Network context of the request (frozen mapping).
        metadata: Arbitrary structured details (frozen mapping).
    """

    id: str
    envelope_id: str
    sequence: int
    event_type: AuditEventType
    description: str
    actor: str
    occurred_at: datetime
    previous_hash: str
    content_hash: str
    signer_id: str | None = None
    previous_event_id: str | None = None
    network: MappingProxyType[str, Any] | dict[str, Any] = field(default_factory=dict)
    metadata: MappingProxyType[str, Any] | dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate fields and freeze the mappings.

        Raises:
            ValidationError: If any field fails validation.
        """
        if not isinstance(self.sequence, int) or self.sequence < 1:
            raise ValidationError(
                f"Audit event sequence must be a positive integer, got {self.sequence}"
            )
        if not isinstance(self.event_type, AuditEventType):
            raise ValidationError(
                f"Audit event type must be AuditEventType, got {type(self.event_type).__name__}"
            )
        if (self.sequence == 1) != (self.previous_event_id is None):
            raise ValidationError(
                "previous_event_id must be None exactly for the first event"
            )
        if not self.previous_hash or not self.content_hash:
            raise ValidationError("Audit event hash fields must be non-empty")
        for name in ("network", "metadata"):
            value = getattr(self, name)
            if isinstance(value, dict):
                object.__setattr__(self, name, MappingProxyType(dict(value)))
            elif not isinstance(value, MappingProxyType):
                raise ValidationError(
                    f"Audit event {name} must be dict, got {type(value).__name__}"
                )

    def __hash__(self) -> int:
        return hash(self.id)

    def hashable_content(self) -> dict[str, Any]:
        """Fields covered by content_hash."""
        return {
            "envelope_id": self.envelope_id,
            "signer_id": self.signer_id,
            "event_type": self.event_type.value,
            "description": self.description,
            "actor": self.actor,
            "network": dict(self.network),
            "metadata": dict(self.metadata),
            "occurred_at": self.occurred_at,
            "sequence": self.sequence,
            "previous_hash": self.previous_hash,
        }

    def recompute_hash(self) -> str:
        """Recompute content_hash from the stored fields."""
        return compute_content_hash(self.hashable_content())

    @classmethod
    def create_with_hash(
        cls,
        *,
        event_id: str,
        envelope_id: str,
        event_type: AuditEventType,
        description: str,
        actor: str,
        occurred_at: datetime,
        previous: AuditEvent | None,
        signer_id: str | None = None,
        network: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Create the next event of a chain with computed hashes.

        Args:
            event_id: Identifier for the new event.
            envelope_id: Envelope the event belongs to.
            event_type: Kind of transition.
            description: Human-readable description.
            actor: Acting principal identity.
            occurred_at: Event time.
            previous: Current head of the envelope's chain, or None.
            signer_id: Signer involved, if any.
            network: Network context mapping.
            metadata: Structured details.

        Returns:
            New AuditEvent linked to ``previous``.

        Raises:
            ValidationError: If ``previous`` belongs to another envelope.
        """
        if previous is not None and previous.envelope_id != envelope_id:
            raise ValidationError(
                f"Cannot chain event for {envelope_id} after event of {previous.envelope_id}"
            )
        sequence = 1 if previous is None else previous.sequence + 1
        previous_hash = link_hash(None if previous is None else previous.content_hash)
        network = dict(network or {})
        metadata = dict(metadata or {})
        content_hash = compute_content_hash(
            {
                "envelope_id": envelope_id,
                "signer_id": signer_id,
                "event_type": event_type.value,
                "description": description,
                "actor": actor,
                "network": network,
                "metadata": metadata,
                "occurred_at": occurred_at,
                "sequence": sequence,
                "previous_hash": previous_hash,
            }
        )
        return cls(
            id=event_id,
            envelope_id=envelope_id,
            sequence=sequence,
            event_type=event_type,
            description=description,
            actor=actor,
            occurred_at=occurred_at,
            previous_hash=previous_hash,
            content_hash=content_hash,
            signer_id=signer_id,
            previous_event_id=None if previous is None else previous.id,
            network=network,
            metadata=metadata,
        )
