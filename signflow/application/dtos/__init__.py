"""Application DTOs for the signing coordinator."""

from signflow.application.dtos.signing import (
    AuditTrailPage,
    CancelEnvelopeCommand,
    ConsentPayload,
    CreateEnvelopeCommand,
    DeclineSignerCommand,
    EnvelopeAccessType,
    EnvelopePage,
    EnvelopeView,
    IssuedInvitation,
    ListEnvelopesQuery,
    RevokeInvitationCommand,
    SendEnvelopeCommand,
    SendEnvelopeResult,
    SendRemindersCommand,
    SendRemindersResult,
    ShareDocumentViewCommand,
    SignDocumentCommand,
    SignDocumentResult,
    SignerSpec,
    SkippedReminder,
    UpdateEnvelopeCommand,
)

__all__: list[str] = [
    "AuditTrailPage",
    "CancelEnvelopeCommand",
    "ConsentPayload",
    "CreateEnvelopeCommand",
    "DeclineSignerCommand",
    "EnvelopeAccessType",
    "EnvelopePage",
    "EnvelopeView",
    "IssuedInvitation",
    "ListEnvelopesQuery",
    "RevokeInvitationCommand",
    "SendEnvelopeCommand",
    "SendEnvelopeResult",
    "SendRemindersCommand",
    "SendRemindersResult",
    "ShareDocumentViewCommand",
    "SignDocumentCommand",
    "SignDocumentResult",
    "SignerSpec",
    "SkippedReminder",
    "UpdateEnvelopeCommand",
]
