"""Invitation token domain model.

A token is a single-purpose, time-boxed credential that lets an external
participant act on an envelope without an authenticated session. Only the
SHA-256 hash of the secret is stored; the raw secret is handed out once,
at issuance.

Lifecycle:
    issued -> viewed (any number of times)
    issued -> used     (SIGNER tokens only, on signing or declining)
    issued -> revoked  (explicit owner action)
    issued -> expired  (wall clock passes expires_at; no mutation)

Once expired or revoked a token never becomes valid again.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum

from signflow.domain.errors.invitation import (
    InvalidTokenExpiryError,
    InvitationTokenAlreadyUsedError,
    InvitationTokenExpiredError,
    InvitationTokenRevokedError,
)
from signflow.domain.models.network_context import NetworkContext

TOKEN_SECRET_BYTES = 32
MAX_TOKEN_TTL_DAYS = 365


class TokenPurpose(Enum):
    """What the token grants.

    SIGNER tokens are consumed by signing or declining. VIEWER tokens grant
    read access and stay reusable until they expire or are revoked.
    """

    SIGNER = "SIGNER"
    VIEWER = "VIEWER"


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def generate_token_secret() -> str:
    """Generate a URL-safe random token secret."""
    return secrets.token_urlsafe(TOKEN_SECRET_BYTES)


def hash_token_secret(secret: str) -> str:
    """SHA-256 hex digest used to store and look up a token."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class InvitationToken:
    """A credential binding an external participant to one envelope.

    Attributes:
        id: Token identifier (safe to log).
        envelope_id: Envelope the token grants access to.
        signer_id: Participant the token is bound to.
        token_hash: SHA-256 hex of the secret.
        purpose: SIGNER or VIEWER.
        created_by: User that issued the token (the participant's inviter).
        expires_at: Expiry timestamp.
        created_at: Issuance timestamp.
        sent_at / last_sent_at / resend_count: Delivery bookkeeping.
        used_at: When a SIGNER token was consumed.
        revoked_at / revoked_reason: Revocation details.
        view_count / last_viewed_at: Read access bookkeeping.
        issued_network: Network context of the issuing request.
        last_used_network: Network context of the latest view or use.
    """

    id: str
    envelope_id: str
    signer_id: str
    token_hash: str
    purpose: TokenPurpose
    created_by: str
    expires_at: datetime
    created_at: datetime = field(default_factory=_utc_now)
    sent_at: datetime | None = None
    last_sent_at: datetime | None = None
    resend_count: int = 0
    used_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_reason: str | None = None
    view_count: int = 0
    last_viewed_at: datetime | None = None
    issued_network: NetworkContext | None = None
    last_used_network: NetworkContext | None = None

    @classmethod
    def issue(
        cls,
        token_id: str,
        envelope_id: str,
        signer_id: str,
        purpose: TokenPurpose,
        created_by: str,
        expires_at: datetime,
        network: NetworkContext | None = None,
        now: datetime | None = None,
        max_ttl_days: int = MAX_TOKEN_TTL_DAYS,
    ) -> tuple[InvitationToken, str]:
        """Issue a token and return it together with its raw secret.

        Args:
            token_id: Identifier for the new token.
            envelope_id: Envelope the token grants access to.
            signer_id: Participant the token is bound to.
            purpose: SIGNER or VIEWER.
            created_by: Issuing user.
            expires_at: Requested expiry.
            network: Network context of the issuing request.
            now: Issuance time.
            max_ttl_days: Upper bound on the token lifetime.

        Returns:
            Tuple of (token, raw secret). The secret is not stored.

        Raises:
            InvalidTokenExpiryError: If expiry is not strictly in the future
                or is further out than max_ttl_days.
        """
        now = now or _utc_now()
        if expires_at <= now:
            raise InvalidTokenExpiryError(expires_at, "expiry must be in the future")
        if expires_at > now + timedelta(days=max_ttl_days):
            raise InvalidTokenExpiryError(
                expires_at, f"expiry cannot be more than {max_ttl_days} days out"
            )
        secret = generate_token_secret()
        token = cls(
            id=token_id,
            envelope_id=envelope_id,
            signer_id=signer_id,
            token_hash=hash_token_secret(secret),
            purpose=purpose,
            created_by=created_by,
            expires_at=expires_at,
            created_at=now,
            issued_network=network,
        )
        return token, secret

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or _utc_now()) >= self.expires_at

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_active(self, now: datetime | None = None) -> bool:
        """Usable for its purpose right now."""
        if self.is_expired(now) or self.is_revoked:
            return False
        return self.purpose is TokenPurpose.VIEWER or not self.is_used

    def validate_for_signing(self, now: datetime | None = None) -> None:
        """Check expiry, then used, then revoked.

        Raises:
            InvitationTokenExpiredError: If expired.
            InvitationTokenAlreadyUsedError: If already used.
            InvitationTokenRevokedError: If revoked.
        """
        if self.is_expired(now):
            raise InvitationTokenExpiredError(self.id, self.expires_at)
        if self.used_at is not None:
            raise InvitationTokenAlreadyUsedError(self.id, self.used_at)
        if self.is_revoked:
            raise InvitationTokenRevokedError(self.id, self.revoked_reason)

    def validate_for_viewing(self, now: datetime | None = None) -> None:
        """Check expiry, then revoked. A used token may still view.

        Raises:
            InvitationTokenExpiredError: If expired.
            InvitationTokenRevokedError: If revoked.
        """
        if self.is_expired(now):
            raise InvitationTokenExpiredError(self.id, self.expires_at)
        if self.is_revoked:
            raise InvitationTokenRevokedError(self.id, self.revoked_reason)

    def mark_sent(self, now: datetime | None = None) -> InvitationToken:
        """Record a (re)delivery of the invitation."""
        now = now or _utc_now()
        if self.sent_at is None:
            return replace(self, sent_at=now, last_sent_at=now)
        return replace(self, last_sent_at=now, resend_count=self.resend_count + 1)

    def mark_viewed(
        self, network: NetworkContext | None = None, now: datetime | None = None
    ) -> InvitationToken:
        """Record a view.

        Raises:
            InvitationTokenExpiredError: If expired.
            InvitationTokenRevokedError: If revoked.
        """
        now = now or _utc_now()
        self.validate_for_viewing(now)
        return replace(
            self,
            view_count=self.view_count + 1,
            last_viewed_at=now,
            last_used_network=network or self.last_used_network,
        )

    def mark_used(
        self, network: NetworkContext | None = None, now: datetime | None = None
    ) -> InvitationToken:
        """Consume a SIGNER token.

        Raises:
            InvitationTokenExpiredError: If expired.
            InvitationTokenAlreadyUsedError: If already used.
            InvitationTokenRevokedError: If revoked.
        """
        now = now or _utc_now()
        self.validate_for_signing(now)
        return replace(
            self, used_at=now, last_used_network=network or self.last_used_network
        )

    def revoke(self, reason: str, now: datetime | None = None) -> InvitationToken:
        """Revoke the token. The first revocation is kept.

        Raises:
            InvitationTokenRevokedError: If already revoked.
        """
        if self.is_revoked:
            raise InvitationTokenRevokedError(self.id, self.revoked_reason)
        return replace(self, revoked_at=now or _utc_now(), revoked_reason=reason)
