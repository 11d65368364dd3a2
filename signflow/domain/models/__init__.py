"""Domain models for signflow.

Contains the envelope aggregate, its signers, invitation tokens, consent
and reminder bookkeeping. These models are immutable and contain no
infrastructure dependencies.
"""

from signflow.domain.models.consent import Consent
from signflow.domain.models.envelope import (
    DocumentOrigin,
    Envelope,
    EnvelopeProgress,
    EnvelopeStatus,
    SigningOrder,
)
from signflow.domain.models.invitation_token import (
    InvitationToken,
    TokenPurpose,
    hash_token_secret,
)
from signflow.domain.models.network_context import ActorContext, NetworkContext
from signflow.domain.models.page_cursor import AuditCursor, EnvelopeCursor
from signflow.domain.models.reminder_tracking import (
    ReminderDecision,
    ReminderSkipReason,
    SignerReminderTracking,
)
from signflow.domain.models.signer import (
    ExternalParticipant,
    InternalParticipant,
    Participant,
    SignatureEvidence,
    Signer,
    SignerRole,
    SignerStatus,
)

__all__: list[str] = [
    "ActorContext",
    "AuditCursor",
    "Consent",
    "DocumentOrigin",
    "Envelope",
    "EnvelopeCursor",
    "EnvelopeProgress",
    "EnvelopeStatus",
    "ExternalParticipant",
    "InternalParticipant",
    "InvitationToken",
    "NetworkContext",
    "Participant",
    "ReminderDecision",
    "ReminderSkipReason",
    "SignatureEvidence",
    "Signer",
    "SignerReminderTracking",
    "SignerRole",
    "SignerStatus",
    "SigningOrder",
    "TokenPurpose",
    "hash_token_secret",
]
