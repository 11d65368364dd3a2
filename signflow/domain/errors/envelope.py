"""Envelope lifecycle errors.

Raised by the Envelope aggregate when a transition is attempted outside
its guards, and by the coordinator when an envelope cannot be found.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from signflow.domain.exceptions import NotFoundError, StateConflictError, ValidationError

if TYPE_CHECKING:
    from datetime import datetime

    from signflow.domain.models.envelope import EnvelopeStatus


class InvalidEnvelopeStateError(StateConflictError):
    """Raised when an envelope transition is not permitted from its current state.

    Attributes:
        envelope_id: The envelope that rejected the transition.
        current_state: The state the envelope is in.
        attempted: The transition or target state that was attempted.
    """

    code = "INVALID_ENVELOPE_STATE"

    def __init__(
        self,
        envelope_id: str,
        current_state: EnvelopeStatus,
        attempted: str,
        detail: str | None = None,
    ) -> None:
        """Initialize invalid envelope state error.

        Args:
            envelope_id: Envelope identifier.
            current_state: Current envelope status.
            attempted: Name of the attempted transition or target status.
            detail: Optional extra explanation.
        """
        self.envelope_id = envelope_id
        self.current_state = current_state
        self.attempted = attempted
        suffix = f" ({detail})" if detail else ""
        super().__init__(
            f"Envelope {envelope_id} cannot '{attempted}' while "
            f"{current_state.value}{suffix}"
        )


class EnvelopeNotFoundError(NotFoundError):
    """Raised when an envelope does not exist."""

    code = "ENVELOPE_NOT_FOUND"

    def __init__(self, envelope_id: str) -> None:
        self.envelope_id = envelope_id
        super().__init__(f"Envelope not found: {envelope_id}")


class ImmutableFieldError(StateConflictError):
    """Raised when an update touches a field that can never change.

    Owner, origin and template identity are fixed at creation regardless
    of the envelope state.

    Attributes:
        envelope_id: The envelope being updated.
        fields: The immutable fields present in the update.
    """

    code = "IMMUTABLE_FIELD"

    def __init__(self, envelope_id: str, fields: list[str]) -> None:
        self.envelope_id = envelope_id
        self.fields = sorted(fields)
        super().__init__(
            f"Envelope {envelope_id}: immutable field(s) cannot be updated: "
            f"{', '.join(self.fields)}"
        )


class InvalidEnvelopeDataError(ValidationError):
    """Raised when envelope metadata fails validation (title, limits, origin)."""

    code = "INVALID_ENVELOPE_DATA"


class DocumentNotFoundError(NotFoundError):
    """Raised when a document key does not resolve in object storage."""

    code = "DOCUMENT_NOT_FOUND"

    def __init__(self, envelope_id: str, key: str) -> None:
        self.envelope_id = envelope_id
        self.key = key
        super().__init__(f"Document {key} of envelope {envelope_id} not found")


class EnvelopeExpiredError(InvalidEnvelopeStateError):
    """Raised when a signer acts on an envelope past its ``expires_at``.

    Expiry is evaluated when the action is attempted; the stored status
    stays SENT.
    """

    code = "ENVELOPE_EXPIRED"

    def __init__(
        self,
        envelope_id: str,
        current_state: EnvelopeStatus,
        attempted: str,
        expires_at: datetime,
    ) -> None:
        self.expires_at = expires_at
        super().__init__(
            envelope_id, current_state, attempted, f"expired at {expires_at.isoformat()}"
        )


class DocumentNotReadyError(ValidationError):
    """Raised when an envelope has no document that can be signed yet."""

    code = "DOCUMENT_NOT_READY"

    def __init__(self, envelope_id: str) -> None:
        self.envelope_id = envelope_id
        super().__init__(f"Document of envelope {envelope_id} is not ready for signing")
