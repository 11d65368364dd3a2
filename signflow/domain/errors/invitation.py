"""Invitation token errors.

Expired, used and revoked tokens each carry their own code so a client can
render the right message.
"""

from __future__ import annotations

from datetime import datetime

from signflow.domain.exceptions import InvitationTokenError, NotFoundError, ValidationError


class InvitationTokenNotFoundError(NotFoundError):
    """Raised when no token matches the presented secret or id."""

    code = "INVITATION_TOKEN_NOT_FOUND"

    def __init__(self, reference: str = "") -> None:
        self.reference = reference
        super().__init__(
            f"Invitation token not found: {reference}"
            if reference
            else "Invitation token not found"
        )


class InvitationTokenExpiredError(InvitationTokenError):
    """Raised when the token's expiry has passed."""

    code = "INVITATION_TOKEN_EXPIRED"

    def __init__(self, token_id: str, expires_at: datetime) -> None:
        self.token_id = token_id
        self.expires_at = expires_at
        super().__init__(
            f"Invitation token {token_id} expired at {expires_at.isoformat()}"
        )


class InvitationTokenAlreadyUsedError(InvitationTokenError):
    """Raised when a signing token has already been consumed."""

    code = "INVITATION_TOKEN_ALREADY_USED"

    def __init__(self, token_id: str, used_at: datetime) -> None:
        self.token_id = token_id
        self.used_at = used_at
        super().__init__(
            f"Invitation token {token_id} was already used at {used_at.isoformat()}"
        )


class InvitationTokenRevokedError(InvitationTokenError):
    """Raised when the token was revoked by the envelope owner."""

    code = "INVITATION_TOKEN_REVOKED"

    def __init__(self, token_id: str, reason: str | None = None) -> None:
        self.token_id = token_id
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invitation token {token_id} has been revoked{detail}")


class InvalidTokenExpiryError(ValidationError):
    """Raised when a requested expiry is not in the future or exceeds the cap."""

    code = "INVALID_TOKEN_EXPIRY"

    def __init__(self, expires_at: datetime, reason: str) -> None:
        self.expires_at = expires_at
        self.reason = reason
        super().__init__(
            f"Invalid invitation expiry {expires_at.isoformat()}: {reason}"
        )
