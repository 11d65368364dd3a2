"""Recomputes an envelope's audit chain and reports the first break."""

from __future__ import annotations

from collections.abc import Sequence

from signflow.domain.errors.audit import AuditChainBrokenError
from signflow.domain.events.audit_event import AuditEvent
from signflow.domain.events.hash_utils import GENESIS_HASH


def verify_audit_chain(envelope_id: str, events: Sequence[AuditEvent]) -> int:
    """Verify a full, oldest-first audit history of one envelope.

    Every event must belong to the envelope, carry the next sequence number,
    point at its predecessor by id and by hash, and reproduce its own
    content_hash.

    Args:
        envelope_id: Envelope whose history is verified.
        events: All events of the envelope, oldest first.

    Returns:
        Number of events verified.

    Raises:
        AuditChainBrokenError: On the first event that does not verify.
    """
    previous: AuditEvent | None = None
    for expected_sequence, event in enumerate(events, start=1):
        if event.envelope_id != envelope_id:
            raise AuditChainBrokenError(
                envelope_id, event.sequence, event.id, "event belongs to another envelope"
            )
        if event.sequence != expected_sequence:
            raise AuditChainBrokenError(
                envelope_id,
                event.sequence,
                event.id,
                f"expected sequence {expected_sequence}",
            )
        expected_previous_id = None if previous is None else previous.id
        expected_previous_hash = GENESIS_HASH if previous is None else previous.content_hash
        if event.previous_event_id != expected_previous_id:
            raise AuditChainBrokenError(
                envelope_id, event.sequence, event.id, "previous_event_id mismatch"
            )
        if event.previous_hash != expected_previous_hash:
            raise AuditChainBrokenError(
                envelope_id, event.sequence, event.id, "previous_hash mismatch"
            )
        if event.recompute_hash() != event.content_hash:
            raise AuditChainBrokenError(
                envelope_id, event.sequence, event.id, "content_hash mismatch"
            )
        previous = event
    return len(events)
