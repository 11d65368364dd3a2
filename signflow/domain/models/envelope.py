"""Envelope aggregate.

An envelope is one document-signing transaction: the document references,
its participants and the lifecycle that ends in completion, decline or
cancellation. Callers never assign fields directly; every mutation goes
through a method that enforces the aggregate's invariants and returns a
new immutable instance.

State Machine:
    DRAFT -> SENT          (send: at least one non-viewer signer)
    DRAFT -> CANCELLED     (owner cancels)
    SENT  -> COMPLETED     (every non-viewer signer SIGNED)
    SENT  -> DECLINED      (any signer declines)
    SENT  -> CANCELLED     (owner cancels)

COMPLETED, DECLINED and CANCELLED are terminal. A SENT envelope past its
``expires_at`` keeps its status but admits no further sign or decline.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from signflow.domain.errors.envelope import (
    ImmutableFieldError,
    InvalidEnvelopeDataError,
    InvalidEnvelopeStateError,
)
from signflow.domain.errors.signer import (
    DuplicateSignerError,
    InvalidSignerStateError,
    SignerNotFoundError,
)
from signflow.domain.models.signer import Signer, SignerStatus

MAX_TITLE_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 1000
MAX_PARTICIPANTS = 50

IMMUTABLE_FIELDS: frozenset[str] = frozenset(
    {"id", "owner_id", "origin", "template_id", "template_version", "created_at"}
)
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "description",
        "signing_order",
        "source_key",
        "source_hash",
        "flattened_key",
        "flattened_hash",
        "expires_at",
    }
)


class EnvelopeStatus(Enum):
    """Envelope lifecycle status."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    CANCELLED = "CANCELLED"

    def is_terminal(self) -> bool:
        """Check if no further transitions are permitted."""
        return self in TERMINAL_ENVELOPE_STATES

    def valid_transitions(self) -> frozenset[EnvelopeStatus]:
        """Get valid transitions from this status.

        Returns:
            Frozenset of reachable statuses. Empty for terminal statuses.
        """
        return ENVELOPE_TRANSITION_MATRIX.get(self, frozenset())


class SigningOrder(Enum):
    """Who signs first once the envelope is sent."""

    OWNER_FIRST = "OWNER_FIRST"
    INVITEES_FIRST = "INVITEES_FIRST"
    UNORDERED = "UNORDERED"


class DocumentOrigin(Enum):
    """Where the envelope's source document came from."""

    USER_UPLOAD = "USER_UPLOAD"
    TEMPLATE = "TEMPLATE"


TERMINAL_ENVELOPE_STATES: frozenset[EnvelopeStatus] = frozenset(
    {EnvelopeStatus.COMPLETED, EnvelopeStatus.DECLINED, EnvelopeStatus.CANCELLED}
)

ENVELOPE_TRANSITION_MATRIX: dict[EnvelopeStatus, frozenset[EnvelopeStatus]] = {
    EnvelopeStatus.DRAFT: frozenset({EnvelopeStatus.SENT, EnvelopeStatus.CANCELLED}),
    EnvelopeStatus.SENT: frozenset(
        {EnvelopeStatus.COMPLETED, EnvelopeStatus.DECLINED, EnvelopeStatus.CANCELLED}
    ),
    EnvelopeStatus.COMPLETED: frozenset(),
    EnvelopeStatus.DECLINED: frozenset(),
    EnvelopeStatus.CANCELLED: frozenset(),
}


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def _coerce_enum(enum_type: type[Enum], value: Any, name: str) -> Any:
    """Return ``value`` as a member of ``enum_type``, accepting its raw value."""
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise InvalidEnvelopeDataError(f"Invalid {name}: {value!r}") from None


@dataclass(frozen=True)
class EnvelopeProgress:
    """Signing progress over the non-viewer participants."""

    total: int
    pending: int
    signed: int
    declined: int

    @property
    def percent_complete(self) -> int:
        if self.total == 0:
            return 0
        return (self.signed * 100) // self.total


@dataclass(frozen=True)
class Envelope:
    """Document-plus-participants aggregate.

    Attributes:
        id: Envelope identifier.
        owner_id: User that created the envelope.
        title: Title (1-255 characters).
        description: Optional description (max 1000 characters).
        origin: USER_UPLOAD or TEMPLATE.
        template_id: Template identity, required for TEMPLATE origin.
        template_version: Template version, required for TEMPLATE origin.
        signing_order: Signing-order policy.
        expires_at: Deadline for signing, or None for no deadline.
        source_key: Storage key of the uploaded source document.
        flattened_key: Storage key of the flattened document, if any.
        signed_key: Storage key of the latest signed output, if any.
        source_hash: SHA-256 hex of the source document.
        flattened_hash: SHA-256 hex of the flattened document.
        signed_hash: SHA-256 hex of the latest signed output.
        status: Lifecycle status.
        signers: Participants in insertion order.
        created_at / updated_at: Creation and last mutation timestamps.
        sent_at / completed_at / cancelled_at / declined_at: Transition timestamps.
        declined_by_signer_id: Signer whose decline ended the envelope.
        decline_reason: Reason given on decline.
        cancelled_by: User that cancelled the envelope.
        version: Optimistic concurrency version, advanced by the repository.
    """

    id: str
    owner_id: str
    title: str
    source_key: str
    description: str | None = None
    origin: DocumentOrigin = DocumentOrigin.USER_UPLOAD
    template_id: str | None = None
    template_version: str | None = None
    signing_order: SigningOrder = SigningOrder.OWNER_FIRST
    expires_at: datetime | None = None
    flattened_key: str | None = None
    signed_key: str | None = None
    source_hash: str | None = None
    flattened_hash: str | None = None
    signed_hash: str | None = None
    status: EnvelopeStatus = EnvelopeStatus.DRAFT
    signers: tuple[Signer, ...] = ()
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime | None = None
    sent_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    declined_at: datetime | None = None
    declined_by_signer_id: str | None = None
    decline_reason: str | None = None
    cancelled_by: str | None = None
    version: int = 1

    def __post_init__(self) -> None:
        """Coerce enum fields, validate metadata and fill in timestamps."""
        if self.updated_at is None:
            object.__setattr__(self, "updated_at", self.created_at)
        object.__setattr__(
            self, "signing_order", _coerce_enum(SigningOrder, self.signing_order, "signing_order")
        )
        object.__setattr__(self, "origin", _coerce_enum(DocumentOrigin, self.origin, "origin"))
        self._validate_metadata()
        self._validate_participants()

    def _validate_metadata(self) -> None:
        if not self.owner_id:
            raise InvalidEnvelopeDataError("Envelope requires an owner")
        if not self.title or not self.title.strip():
            raise InvalidEnvelopeDataError("Envelope title must not be empty")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise InvalidEnvelopeDataError(
                f"Envelope title exceeds {MAX_TITLE_LENGTH} characters"
            )
        if self.description is not None and len(self.description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidEnvelopeDataError(
                f"Envelope description exceeds {MAX_DESCRIPTION_LENGTH} characters"
            )
        if not self.source_key:
            raise InvalidEnvelopeDataError("Envelope requires a source document key")
        if self.expires_at is not None and self.expires_at.tzinfo is None:
            raise InvalidEnvelopeDataError("expires_at must be timezone-aware")
        if self.origin is DocumentOrigin.TEMPLATE:
            if not self.template_id or not self.template_version:
                raise InvalidEnvelopeDataError(
                    "TEMPLATE origin requires template_id and template_version"
                )
        elif self.template_id or self.template_version:
            raise InvalidEnvelopeDataError(
                "template_id and template_version are only valid for TEMPLATE origin"
            )

    def _validate_participants(self) -> None:
        if len(self.signers) > MAX_PARTICIPANTS:
            raise InvalidEnvelopeDataError(
                f"Envelope cannot have more than {MAX_PARTICIPANTS} participants"
            )
        seen: set[str] = set()
        for signer in self.signers:
            if signer.envelope_id != self.id:
                raise InvalidEnvelopeDataError(
                    f"Signer {signer.id} belongs to envelope {signer.envelope_id}"
                )
            if signer.identity_key in seen:
                raise DuplicateSignerError(self.id, signer.identity_key)
            seen.add(signer.identity_key)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    @property
    def required_signers(self) -> tuple[Signer, ...]:
        """Participants whose signature is needed for completion."""
        return tuple(s for s in self.signers if not s.is_viewer)

    @property
    def external_signers(self) -> tuple[Signer, ...]:
        return tuple(s for s in self.signers if s.is_external)

    def get_signer(self, signer_id: str) -> Signer:
        """Get a participant by id.

        Raises:
            SignerNotFoundError: If the signer is not on this envelope.
        """
        for signer in self.signers:
            if signer.id == signer_id:
                return signer
        raise SignerNotFoundError(self.id, signer_id)

    def find_signer_by_user(self, user_id: str) -> Signer | None:
        for signer in self.signers:
            if signer.user_id == user_id:
                return signer
        return None

    def owner_signer(self) -> Signer | None:
        """The owner's own participant entry, if the owner signs too."""
        return self.find_signer_by_user(self.owner_id)

    def is_owner(self, user_id: str | None) -> bool:
        return user_id is not None and user_id == self.owner_id

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def validate_expiry(self, now: datetime, max_ttl_days: int) -> None:
        """Check that a set ``expires_at`` lies in (now, now + max_ttl_days].

        Raises:
            InvalidEnvelopeDataError: If the deadline is past or too far out.
        """
        if self.expires_at is None:
            return
        if self.expires_at <= now:
            raise InvalidEnvelopeDataError("expires_at must be in the future")
        if self.expires_at > now + timedelta(days=max_ttl_days):
            raise InvalidEnvelopeDataError(
                f"expires_at cannot be more than {max_ttl_days} days ahead"
            )

    def all_required_signed(self) -> bool:
        """True when there is at least one required signer and all have signed."""
        required = self.required_signers
        return bool(required) and all(s.status is SignerStatus.SIGNED for s in required)

    def progress(self) -> EnvelopeProgress:
        required = self.required_signers
        return EnvelopeProgress(
            total=len(required),
            pending=sum(1 for s in required if s.status is SignerStatus.PENDING),
            signed=sum(1 for s in required if s.status is SignerStatus.SIGNED),
            declined=sum(1 for s in required if s.status is SignerStatus.DECLINED),
        )

    def next_signer(self) -> Signer | None:
        """Return the signer expected to act next under the signing order.

        Returns None when nothing is pending.
        """
        pending = sorted(
            (s for s in self.required_signers if s.is_pending), key=lambda s: s.order
        )
        if not pending:
            return None
        owner = self.owner_signer()
        owner_pending = owner is not None and owner.is_pending and not owner.is_viewer
        invitees = [s for s in pending if owner is None or s.id != owner.id]
        if self.signing_order is SigningOrder.OWNER_FIRST and owner_pending:
            return owner
        if self.signing_order is SigningOrder.INVITEES_FIRST:
            return invitees[0] if invitees else owner
        return pending[0]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _require_status(self, attempted: str, *allowed: EnvelopeStatus) -> None:
        if self.status not in allowed:
            raise InvalidEnvelopeStateError(self.id, self.status, attempted)

    def _transition(self, target: EnvelopeStatus, now: datetime, **changes: Any) -> Envelope:
        if target not in self.status.valid_transitions():
            raise InvalidEnvelopeStateError(self.id, self.status, target.value)
        return replace(self, status=target, updated_at=now, **changes)

    def update(self, changes: Mapping[str, Any], now: datetime | None = None) -> Envelope:
        """Apply metadata changes to a DRAFT envelope.

        Immutable fields are rejected before the state is checked, so an
        attempt to change the owner fails the same way on any envelope.

        Args:
            changes: Field name to new value.
            now: Mutation timestamp.

        Returns:
            The updated envelope.

        Raises:
            ImmutableFieldError: If an immutable field is present.
            InvalidEnvelopeDataError: If a field is unknown or invalid.
            InvalidEnvelopeStateError: If the envelope is not DRAFT.
        """
        immutable = [name for name in changes if name in IMMUTABLE_FIELDS]
        if immutable:
            raise ImmutableFieldError(self.id, immutable)
        unknown = [name for name in changes if name not in UPDATABLE_FIELDS]
        if unknown:
            raise InvalidEnvelopeDataError(
                f"Unknown envelope field(s): {', '.join(sorted(unknown))}"
            )
        self._require_status("update", EnvelopeStatus.DRAFT)
        if not changes:
            return self
        return replace(self, updated_at=now or _utc_now(), **dict(changes))

    def add_signer(self, signer: Signer, now: datetime | None = None) -> Envelope:
        """Add a participant to a DRAFT envelope.

        Raises:
            InvalidEnvelopeStateError: If the envelope is not DRAFT.
            DuplicateSignerError: If the identity is already present.
            InvalidEnvelopeDataError: If the participant limit is reached.
        """
        self._require_status("add_signer", EnvelopeStatus.DRAFT)
        return replace(self, signers=self.signers + (signer,), updated_at=now or _utc_now())

    def remove_signer(self, signer_id: str, now: datetime | None = None) -> Envelope:
        """Remove a participant from a DRAFT envelope.

        Raises:
            InvalidEnvelopeStateError: If the envelope is not DRAFT.
            SignerNotFoundError: If the signer is not on the envelope.
            InvalidSignerStateError: If the signer has already signed.
        """
        self._require_status("remove_signer", EnvelopeStatus.DRAFT)
        signer = self.get_signer(signer_id)
        if signer.status is SignerStatus.SIGNED:
            raise InvalidSignerStateError(signer_id, "a signer who signed cannot be removed")
        return replace(
            self,
            signers=tuple(s for s in self.signers if s.id != signer_id),
            updated_at=now or _utc_now(),
        )

    def replace_signer(self, signer: Signer, now: datetime | None = None) -> Envelope:
        """Swap in a transitioned signer. The signer must already exist."""
        self.get_signer(signer.id)
        return replace(
            self,
            signers=tuple(signer if s.id == signer.id else s for s in self.signers),
            updated_at=now or _utc_now(),
        )

    def record_signature(
        self,
        signer: Signer,
        flattened_hash: str,
        signed_key: str,
        signed_hash: str,
        now: datetime | None = None,
    ) -> Envelope:
        """Store a SIGNED signer and advance the document hash triple.

        Raises:
            InvalidSignerStateError: If the signer carries no evidence.
        """
        if signer.status is not SignerStatus.SIGNED or signer.evidence is None:
            raise InvalidSignerStateError(signer.id, "signer is not signed")
        updated = self.replace_signer(signer, now)
        return replace(
            updated,
            flattened_hash=flattened_hash,
            signed_key=signed_key,
            signed_hash=signed_hash,
        )

    def send(self, now: datetime | None = None) -> Envelope:
        """DRAFT -> SENT. Requires at least one non-viewer signer.

        Viewers alone could never complete the envelope.

        Raises:
            InvalidEnvelopeStateError: If not DRAFT or without a required signer.
        """
        self._require_status("send", EnvelopeStatus.DRAFT)
        if not self.required_signers:
            raise InvalidEnvelopeStateError(
                self.id, self.status, "send", "envelope has no signers"
            )
        now = now or _utc_now()
        return self._transition(EnvelopeStatus.SENT, now, sent_at=now)

    def complete(self, now: datetime | None = None) -> Envelope:
        """SENT -> COMPLETED. Requires every non-viewer signer SIGNED.

        Raises:
            InvalidEnvelopeStateError: If not SENT or a signer is not SIGNED.
        """
        self._require_status("complete", EnvelopeStatus.SENT)
        if not self.all_required_signed():
            raise InvalidEnvelopeStateError(
                self.id, self.status, "complete", "not every signer has signed"
            )
        now = now or _utc_now()
        return self._transition(EnvelopeStatus.COMPLETED, now, completed_at=now)

    def decline(self, signer_id: str, reason: str, now: datetime | None = None) -> Envelope:
        """SENT -> DECLINED, triggered by a signer's decline.

        Raises:
            InvalidEnvelopeStateError: If not SENT.
            SignerNotFoundError: If the signer is not on the envelope.
        """
        self._require_status("decline", EnvelopeStatus.SENT)
        self.get_signer(signer_id)
        now = now or _utc_now()
        return self._transition(
            EnvelopeStatus.DECLINED,
            now,
            declined_at=now,
            declined_by_signer_id=signer_id,
            decline_reason=reason,
        )

    def cancel(self, cancelled_by: str, now: datetime | None = None) -> Envelope:
        """DRAFT|SENT -> CANCELLED.

        Raises:
            InvalidEnvelopeStateError: If already terminal.
        """
        self._require_status("cancel", EnvelopeStatus.DRAFT, EnvelopeStatus.SENT)
        now = now or _utc_now()
        return self._transition(
            EnvelopeStatus.CANCELLED, now, cancelled_at=now, cancelled_by=cancelled_by
        )
