"""Command and result DTOs for the signing coordinator.

These are what the coordinator accepts and returns. Wire mapping (HTTP,
RPC) lives outside this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from signflow.domain.events.audit_event import AuditEvent
from signflow.domain.models.envelope import (
    DocumentOrigin,
    Envelope,
    EnvelopeStatus,
    SigningOrder,
)
from signflow.domain.models.reminder_tracking import ReminderSkipReason
from signflow.domain.models.signer import SignerRole


class EnvelopeAccessType(str, Enum):
    """How the caller got access to an envelope.

    Values:
        OWNER: The envelope owner.
        PARTICIPANT: An internal user invited by reference.
        EXTERNAL: A holder of an invitation token.
    """

    OWNER = "OWNER"
    PARTICIPANT = "PARTICIPANT"
    EXTERNAL = "EXTERNAL"


@dataclass(frozen=True)
class SignerSpec:
    """A participant to add to a DRAFT envelope.

    Exactly one of ``user_id`` or ``email`` must be set. ``name`` is
    required with ``email``.
    """

    user_id: str | None = None
    email: str | None = None
    name: str | None = None
    role: SignerRole = SignerRole.SIGNER
    order: int | None = None


@dataclass(frozen=True)
class CreateEnvelopeCommand:
    """Create a DRAFT envelope with no signers."""

    title: str
    source_key: str
    description: str | None = None
    origin: DocumentOrigin = DocumentOrigin.USER_UPLOAD
    template_id: str | None = None
    template_version: str | None = None
    signing_order: SigningOrder = SigningOrder.OWNER_FIRST
    source_hash: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class UpdateEnvelopeCommand:
    """Update metadata and participants of a DRAFT envelope."""

    envelope_id: str
    changes: dict[str, Any] = field(default_factory=dict)
    add_signers: list[SignerSpec] = field(default_factory=list)
    remove_signer_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SendEnvelopeCommand:
    """Send a DRAFT envelope.

    Attributes:
        envelope_id: Envelope to send.
        signer_ids: External signers to invite. None means every external
            signer; an empty list invites nobody.
        message: Optional message included in the invitations.
        expires_at: Token expiry; defaults to the configured TTL.
    """

    envelope_id: str
    signer_ids: list[str] | None = None
    message: str | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class IssuedInvitation:
    """A token handed to a participant. ``token`` is the raw secret."""

    signer_id: str
    token_id: str
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class SendEnvelopeResult:
    envelope: Envelope
    invitations: list[IssuedInvitation]


@dataclass(frozen=True)
class ShareDocumentViewCommand:
    """Issue a read-only viewer token for an external participant."""

    envelope_id: str
    signer_id: str
    expires_in_days: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class ConsentPayload:
    """Consent as captured by the signing UI."""

    given: bool
    text: str


@dataclass(frozen=True)
class SignDocumentCommand:
    """Sign a document as one signer.

    Attributes:
        envelope_id: Envelope to sign.
        signer_id: Signer acting.
        consent: Consent captured before signing.
        invitation_token: Raw token secret for external signers.
        flattened_key: Storage key of an already flattened document.
        signed_document: Signed document bytes rendered by the client.
        reason: Signing reason recorded with the evidence.
        location: Signing location recorded with the evidence.
    """

    envelope_id: str
    signer_id: str
    consent: ConsentPayload
    invitation_token: str | None = None
    flattened_key: str | None = None
    signed_document: bytes | None = None
    reason: str | None = None
    location: str | None = None


@dataclass(frozen=True)
class SignDocumentResult:
    envelope: Envelope
    signer_id: str
    consent_id: str
    document_hash: str
    signature_hash: str
    envelope_completed: bool


@dataclass(frozen=True)
class DeclineSignerCommand:
    envelope_id: str
    signer_id: str
    reason: str
    invitation_token: str | None = None


@dataclass(frozen=True)
class CancelEnvelopeCommand:
    envelope_id: str
    reason: str | None = None


@dataclass(frozen=True)
class SendRemindersCommand:
    """Remind pending signers.

    Attributes:
        envelope_id: Envelope to remind for.
        signer_ids: Restrict to these signers; None means all pending.
        message: Optional custom message (max 1024 characters).
    """

    envelope_id: str
    signer_ids: list[str] | None = None
    message: str | None = None


@dataclass(frozen=True)
class SkippedReminder:
    signer_id: str
    reason: ReminderSkipReason
    hours_remaining: float | None = None


@dataclass(frozen=True)
class SendRemindersResult:
    notified: list[str]
    skipped: list[SkippedReminder]


@dataclass(frozen=True)
class RevokeInvitationCommand:
    envelope_id: str
    token_id: str
    reason: str


@dataclass(frozen=True)
class EnvelopeView:
    """An envelope together with how the caller accessed it."""

    envelope: Envelope
    access_type: EnvelopeAccessType
    signer_id: str | None = None


@dataclass(frozen=True)
class DocumentDownload:
    """Current document of an envelope as handed to a reader.

    Attributes:
        envelope_id: Envelope the document belongs to.
        document_key: Storage key that was read.
        content: Document bytes.
        content_hash: SHA-256 hex of ``content``.
        access_type: How the reader got access.
        expires_at: Until when a link derived from this download is valid.
    """

    envelope_id: str
    document_key: str
    content: bytes
    content_hash: str
    access_type: EnvelopeAccessType
    expires_at: datetime


@dataclass(frozen=True)
class EnvelopePage:
    items: list[Envelope]
    next_cursor: str | None = None


@dataclass(frozen=True)
class ListEnvelopesQuery:
    status: EnvelopeStatus | None = None
    limit: int | None = None
    cursor: str | None = None


@dataclass(frozen=True)
class AuditTrailPage:
    events: list[AuditEvent]
    next_cursor: str | None = None
