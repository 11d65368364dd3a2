"""Base exception classes for the signflow domain layer.

Every error raised by the workflow engine belongs to exactly one category
so callers can map it to a response without inspecting messages:

- StateConflictError: a business rule rejected the transition
- NotFoundError: an envelope, signer or token does not exist
- AccessDeniedError: the actor may not perform the operation
- InvitationTokenError: the presented token is expired, used or revoked
- ValidationError: the command itself is malformed
- UpstreamServiceError: storage, signing oracle or event bus failed
"""

from __future__ import annotations


class SigningWorkflowError(Exception):
    """Base exception for all domain errors.

    All domain-specific exceptions MUST inherit from this class.

    Attributes:
        code: Stable machine-readable error code.
    """

    code: str = "SIGNING_WORKFLOW_ERROR"

    def __init__(self, message: str = "") -> None:
        """Initialize the exception with an optional message.

        Args:
            message: Human-readable error description.
        """
        super().__init__(message)
        self.message = message


class StateConflictError(SigningWorkflowError):
    """A genuine business-rule violation. Never retried automatically."""

    code = "STATE_CONFLICT"


class NotFoundError(SigningWorkflowError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"


class AccessDeniedError(SigningWorkflowError):
    """The acting principal is not allowed to perform the operation.

    Attributes:
        reason: Short description of why access was denied.
    """

    code = "ACCESS_DENIED"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Access denied: {reason}")


class InvitationTokenError(SigningWorkflowError):
    """Base for unusable invitation tokens."""

    code = "INVITATION_TOKEN_INVALID"


class ValidationError(SigningWorkflowError):
    """The command carries invalid data."""

    code = "VALIDATION_ERROR"
