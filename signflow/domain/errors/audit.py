"""Audit chain verification errors."""

from __future__ import annotations

from signflow.domain.exceptions import SigningWorkflowError


class AuditChainBrokenError(SigningWorkflowError):
    """Raised when an envelope's audit chain does not recompute.

    Attributes:
        envelope_id: Envelope whose history was verified.
        sequence: Sequence number of the first offending event.
        event_id: Id of the first offending event.
        reason: What failed (content hash, previous hash, sequence, link).
    """

    code = "AUDIT_CHAIN_BROKEN"

    def __init__(self, envelope_id: str, sequence: int, event_id: str, reason: str) -> None:
        self.envelope_id = envelope_id
        self.sequence = sequence
        self.event_id = event_id
        self.reason = reason
        super().__init__(
            f"Audit chain broken for envelope {envelope_id} at sequence "
            f"{sequence} (event {event_id}): {reason}"
        )


class AppendOnlyViolationError(SigningWorkflowError):
    """Raised when code tries to delete an append-only record."""

    code = "APPEND_ONLY_VIOLATION"
