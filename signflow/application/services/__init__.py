"""Application services - Use case orchestration.

This module contains application services that orchestrate domain
operations and coordinate with infrastructure adapters.

Available services:
- SigningCoordinatorService: The signing workflow orchestrator
- InvitationTokenService: Token issuance and resolution
- EnvelopeAccessService: Owner, participant and token-holder access
- AuditTrailService: Hash-chained audit appends and paging
- OutboxPublisherService: Outbox dispatch to the event bus
"""

from signflow.application.services.audit_trail_service import AuditTrailService
from signflow.application.services.base import LoggingMixin
from signflow.application.services.envelope_access_service import (
    AccessGrant,
    EnvelopeAccessService,
)
from signflow.application.services.invitation_token_service import InvitationTokenService
from signflow.application.services.outbox_publisher_service import (
    DispatchResult,
    OutboxPublisherService,
)
from signflow.application.services.signing_coordinator_service import (
    SigningCoordinatorService,
)

__all__ = [
    "AccessGrant",
    "AuditTrailService",
    "DispatchResult",
    "EnvelopeAccessService",
    "InvitationTokenService",
    "LoggingMixin",
    "OutboxPublisherService",
    "SigningCoordinatorService",
]
