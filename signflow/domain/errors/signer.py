"""Signer lifecycle errors.

Already-signed and already-declined are distinct conditions so callers can
tell an idempotent retry from a genuine conflict.
"""

from __future__ import annotations

from signflow.domain.exceptions import NotFoundError, StateConflictError, ValidationError


class SignerAlreadySignedError(StateConflictError):
    """Raised when a signer that already signed is asked to act again."""

    code = "SIGNER_ALREADY_SIGNED"

    def __init__(self, signer_id: str) -> None:
        self.signer_id = signer_id
        super().__init__(f"Signer {signer_id} has already signed")


class SignerAlreadyDeclinedError(StateConflictError):
    """Raised when a signer that already declined is asked to act again."""

    code = "SIGNER_ALREADY_DECLINED"

    def __init__(self, signer_id: str) -> None:
        self.signer_id = signer_id
        super().__init__(f"Signer {signer_id} has already declined")


class InvalidSignerStateError(StateConflictError):
    """Raised when a signer is not in a state that allows the operation.

    Signing before consent was recorded lands here.
    """

    code = "INVALID_SIGNER_STATE"

    def __init__(self, signer_id: str, reason: str) -> None:
        self.signer_id = signer_id
        self.reason = reason
        super().__init__(f"Signer {signer_id}: {reason}")


class SigningOrderViolationError(StateConflictError):
    """Raised when a signer acts out of the envelope's signing order.

    Attributes:
        signer_id: The signer that attempted to sign.
        waiting_for: Ids of the signers that must sign first.
    """

    code = "SIGNING_ORDER_VIOLATION"

    def __init__(self, signer_id: str, policy: str, waiting_for: list[str]) -> None:
        self.signer_id = signer_id
        self.policy = policy
        self.waiting_for = waiting_for
        super().__init__(
            f"Signer {signer_id} cannot sign yet under {policy}: "
            f"waiting for {', '.join(waiting_for)}"
        )


class DuplicateSignerError(StateConflictError):
    """Raised when a participant with the same identity is already on the envelope."""

    code = "DUPLICATE_SIGNER"

    def __init__(self, envelope_id: str, identity: str) -> None:
        self.envelope_id = envelope_id
        self.identity = identity
        super().__init__(
            f"Envelope {envelope_id} already has a participant for {identity}"
        )


class SignerNotFoundError(NotFoundError):
    """Raised when a signer is not part of the envelope."""

    code = "SIGNER_NOT_FOUND"

    def __init__(self, envelope_id: str, signer_id: str) -> None:
        self.envelope_id = envelope_id
        self.signer_id = signer_id
        super().__init__(f"Signer {signer_id} not found in envelope {envelope_id}")


class ConsentNotGivenError(ValidationError):
    """Raised when the consent payload does not express consent.

    Consent needs the given flag, non-empty text and a captured network
    context.
    """

    code = "CONSENT_NOT_GIVEN"

    def __init__(self, signer_id: str, reason: str) -> None:
        self.signer_id = signer_id
        self.reason = reason
        super().__init__(f"Consent not given by signer {signer_id}: {reason}")
