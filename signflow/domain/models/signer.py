"""Signer entity and participant identity.

A Signer belongs to exactly one envelope. Its identity is a tagged union:
either an internal user referenced by id, or an external contact reached
by email. ``is_external`` is derived from the variant at construction and
can never disagree with it.

State Machine:
    PENDING -> SIGNED   (terminal)
    PENDING -> DECLINED (terminal)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from signflow.domain.errors.signer import (
    ConsentNotGivenError,
    InvalidSignerStateError,
    SignerAlreadyDeclinedError,
    SignerAlreadySignedError,
)
from signflow.domain.exceptions import ValidationError
from signflow.domain.models.network_context import NetworkContext

MAX_EMAIL_LENGTH = 254
MAX_NAME_LENGTH = 255
MAX_DECLINE_REASON_LENGTH = 1000


class SignerRole(Enum):
    """Role of a participant on an envelope.

    Viewers receive read access only and never count toward completion.
    """

    SIGNER = "SIGNER"
    WITNESS = "WITNESS"
    VIEWER = "VIEWER"


class SignerStatus(Enum):
    """Signer lifecycle status."""

    PENDING = "PENDING"
    SIGNED = "SIGNED"
    DECLINED = "DECLINED"

    def is_terminal(self) -> bool:
        """SIGNED and DECLINED are terminal."""
        return self is not SignerStatus.PENDING

    def valid_transitions(self) -> frozenset[SignerStatus]:
        """Get valid transitions from this status."""
        return SIGNER_TRANSITION_MATRIX.get(self, frozenset())


SIGNER_TRANSITION_MATRIX: dict[SignerStatus, frozenset[SignerStatus]] = {
    SignerStatus.PENDING: frozenset({SignerStatus.SIGNED, SignerStatus.DECLINED}),
    SignerStatus.SIGNED: frozenset(),
    SignerStatus.DECLINED: frozenset(),
}


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InternalParticipant:
    """A registered user referenced by id."""

    user_id: str

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValidationError("Internal participant requires a user id")

    @property
    def identity_key(self) -> str:
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class ExternalParticipant:
    """An outside contact reached by email.

    The email is stored lower-cased so uniqueness checks are case-insensitive.
    """

    email: str
    name: str

    def __post_init__(self) -> None:
        email = self.email.strip().lower()
        if not email or "@" not in email or len(email) > MAX_EMAIL_LENGTH:
            raise ValidationError(f"Invalid external participant email: {self.email!r}")
        name = self.name.strip()
        if not name or len(name) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"External participant name must be 1-{MAX_NAME_LENGTH} characters"
            )
        object.__setattr__(self, "email", email)
        object.__setattr__(self, "name", name)

    @property
    def identity_key(self) -> str:
        return f"email:{self.email}"


Participant = Union[InternalParticipant, ExternalParticipant]


@dataclass(frozen=True)
class SignatureEvidence:
    """Everything captured when a signer signs.

    Attributes:
        document_hash: SHA-256 hex of the document bytes that were signed.
        signature_hash: SHA-256 hex of the signature returned by the oracle.
        signature: Signature bytes from the oracle, base64 encoded.
        signed_key: Storage key of the signed output document.
        key_id: Signing key identifier reported by the oracle.
        algorithm: Signing algorithm identifier.
        signed_at: Timestamp returned by the oracle.
        network: Network context of the signing request.
        consent_id: Consent record that preceded the signature.
    """

    document_hash: str
    signature_hash: str
    signature: str
    signed_key: str
    key_id: str
    algorithm: str
    signed_at: datetime
    network: NetworkContext
    consent_id: str | None = None


@dataclass(frozen=True)
class Signer:
    """A participant with signing or viewing rights on one envelope.

    Instances are immutable. Every transition returns a new Signer.

    Attributes:
        id: Signer identifier.
        envelope_id: Owning envelope.
        participant: Internal user or external contact.
        role: SIGNER, WITNESS or VIEWER.
        order: 1-based signing order index.
        invited_by_user_id: User that added this participant.
        status: Lifecycle status.
        consent_given: Whether consent has been recorded.
        consent_at: When consent was recorded.
        consent_text: Text the signer consented to.
        evidence: Signature evidence, present only when SIGNED.
        declined_at: When the signer declined.
        decline_reason: Reason given on decline.
        is_external: Derived from the participant variant.
    """

    id: str
    envelope_id: str
    participant: Participant
    invited_by_user_id: str
    role: SignerRole = SignerRole.SIGNER
    order: int = 1
    status: SignerStatus = SignerStatus.PENDING
    consent_given: bool = False
    consent_at: datetime | None = None
    consent_text: str | None = None
    evidence: SignatureEvidence | None = None
    declined_at: datetime | None = None
    decline_reason: str | None = None
    is_external: bool = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.participant, (InternalParticipant, ExternalParticipant)):
            raise ValidationError(
                f"Unsupported participant type: {type(self.participant).__name__}"
            )
        if self.order < 1:
            raise ValidationError(f"Signer order must be >= 1, got {self.order}")
        if (self.status is SignerStatus.SIGNED) != (self.evidence is not None):
            raise InvalidSignerStateError(
                self.id, "signature evidence must be present exactly when SIGNED"
            )
        object.__setattr__(
            self, "is_external", isinstance(self.participant, ExternalParticipant)
        )

    @property
    def email(self) -> str | None:
        if isinstance(self.participant, ExternalParticipant):
            return self.participant.email
        return None

    @property
    def name(self) -> str | None:
        if isinstance(self.participant, ExternalParticipant):
            return self.participant.name
        return None

    @property
    def user_id(self) -> str | None:
        if isinstance(self.participant, InternalParticipant):
            return self.participant.user_id
        return None

    @property
    def identity_key(self) -> str:
        return self.participant.identity_key

    @property
    def is_viewer(self) -> bool:
        return self.role is SignerRole.VIEWER

    @property
    def is_pending(self) -> bool:
        return self.status is SignerStatus.PENDING

    def _ensure_pending(self) -> None:
        if self.status is SignerStatus.SIGNED:
            raise SignerAlreadySignedError(self.id)
        if self.status is SignerStatus.DECLINED:
            raise SignerAlreadyDeclinedError(self.id)

    def record_consent(
        self,
        consent_text: str,
        network: NetworkContext,
        given: bool = True,
        now: datetime | None = None,
    ) -> Signer:
        """Record consent ahead of signing.

        Consent can be re-recorded while PENDING so a retried signing
        attempt does not fail on its own earlier consent.

        Raises:
            SignerAlreadySignedError: If the signer already signed.
            SignerAlreadyDeclinedError: If the signer already declined.
            ConsentNotGivenError: If the payload does not express consent.
        """
        self._ensure_pending()
        if not given:
            raise ConsentNotGivenError(self.id, "consent flag not set")
        if not consent_text or not consent_text.strip():
            raise ConsentNotGivenError(self.id, "consent text is empty")
        if not network.is_captured():
            raise ConsentNotGivenError(self.id, "network context not captured")
        return replace(
            self,
            consent_given=True,
            consent_at=now or _utc_now(),
            consent_text=consent_text.strip(),
        )

    def sign(self, evidence: SignatureEvidence) -> Signer:
        """Transition PENDING -> SIGNED with full evidence.

        Raises:
            SignerAlreadySignedError: If already signed.
            SignerAlreadyDeclinedError: If already declined.
            InvalidSignerStateError: If consent was not recorded or the
                signer is a viewer.
        """
        self._ensure_pending()
        if self.is_viewer:
            raise InvalidSignerStateError(self.id, "viewers cannot sign")
        if not self.consent_given:
            raise InvalidSignerStateError(
                self.id, "consent must be recorded before signing"
            )
        return replace(self, status=SignerStatus.SIGNED, evidence=evidence)

    def decline(self, reason: str, now: datetime | None = None) -> Signer:
        """Transition PENDING -> DECLINED. Consent is not required.

        Raises:
            SignerAlreadySignedError: If already signed.
            SignerAlreadyDeclinedError: If already declined.
            ValidationError: If the reason is empty or too long.
        """
        self._ensure_pending()
        reason = (reason or "").strip()
        if not reason or len(reason) > MAX_DECLINE_REASON_LENGTH:
            raise ValidationError(
                f"Decline reason must be 1-{MAX_DECLINE_REASON_LENGTH} characters"
            )
        return replace(
            self,
            status=SignerStatus.DECLINED,
            declined_at=now or _utc_now(),
            decline_reason=reason,
        )

