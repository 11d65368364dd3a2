"""Domain errors for signflow.

Provides specific exception classes for different failure scenarios.
All exceptions inherit from SigningWorkflowError through one of the
category bases in signflow.domain.exceptions.
"""

from signflow.domain.errors.audit import AppendOnlyViolationError, AuditChainBrokenError
from signflow.domain.errors.concurrent_modification import ConcurrentModificationError
from signflow.domain.errors.envelope import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    EnvelopeExpiredError,
    EnvelopeNotFoundError,
    ImmutableFieldError,
    InvalidEnvelopeDataError,
    InvalidEnvelopeStateError,
)
from signflow.domain.errors.invitation import (
    InvalidTokenExpiryError,
    InvitationTokenAlreadyUsedError,
    InvitationTokenExpiredError,
    InvitationTokenNotFoundError,
    InvitationTokenRevokedError,
)
from signflow.domain.errors.pagination import InvalidPaginationCursorError
from signflow.domain.errors.signer import (
    ConsentNotGivenError,
    DuplicateSignerError,
    InvalidSignerStateError,
    SignerAlreadyDeclinedError,
    SignerAlreadySignedError,
    SignerNotFoundError,
    SigningOrderViolationError,
)
from signflow.domain.errors.upstream import UpstreamServiceError
from signflow.domain.exceptions import (
    AccessDeniedError,
    InvitationTokenError,
    NotFoundError,
    SigningWorkflowError,
    StateConflictError,
    ValidationError,
)

__all__: list[str] = [
    "AccessDeniedError",
    "AppendOnlyViolationError",
    "AuditChainBrokenError",
    "ConcurrentModificationError",
    "ConsentNotGivenError",
    "DocumentNotFoundError",
    "DocumentNotReadyError",
    "DuplicateSignerError",
    "EnvelopeExpiredError",
    "EnvelopeNotFoundError",
    "ImmutableFieldError",
    "InvalidEnvelopeDataError",
    "InvalidEnvelopeStateError",
    "InvalidPaginationCursorError",
    "InvalidSignerStateError",
    "InvalidTokenExpiryError",
    "InvitationTokenAlreadyUsedError",
    "InvitationTokenError",
    "InvitationTokenExpiredError",
    "InvitationTokenNotFoundError",
    "InvitationTokenRevokedError",
    "NotFoundError",
    "SignerAlreadyDeclinedError",
    "SignerAlreadySignedError",
    "SignerNotFoundError",
    "SigningOrderViolationError",
    "SigningWorkflowError",
    "StateConflictError",
    "UpstreamServiceError",
    "ValidationError",
]
