"""
Domain layer - pure business logic for signflow.

This layer contains:
- The Envelope aggregate and its Signers
- Invitation tokens, consent and reminder bookkeeping
- The hash-chained audit trail and outbox records
- The signing-flow rule
- Domain exceptions

CRITICAL: This layer must NOT import from application, infrastructure,
bootstrap or workers. Only stdlib and typing imports are allowed.
"""

from signflow.domain.exceptions import SigningWorkflowError
from signflow.domain.models import Envelope, InvitationToken, Signer

__all__: list[str] = [
    "Envelope",
    "InvitationToken",
    "Signer",
    "SigningWorkflowError",
]
