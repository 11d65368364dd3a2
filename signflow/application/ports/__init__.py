"""Application ports - interfaces for infrastructure adapters.

One narrow protocol per collaborator:
- UnitOfWorkFactoryProtocol / UnitOfWorkProtocol: transactional persistence
- DocumentStoragePort: document bytes
- SigningOraclePort: external signing
- EventBusPort: integration event delivery
- OutboxReaderProtocol: publisher-side outbox access
- WorkflowMetricsProtocol: workflow counters
"""

from signflow.application.ports.audit_event_repository import AuditEventRepositoryProtocol
from signflow.application.ports.consent_repository import ConsentRepositoryProtocol
from signflow.application.ports.document_storage import DocumentStoragePort
from signflow.application.ports.envelope_repository import EnvelopeRepositoryProtocol
from signflow.application.ports.event_bus import EventBusPort
from signflow.application.ports.invitation_token_repository import (
    InvitationTokenRepositoryProtocol,
)
from signflow.application.ports.metrics_collector import WorkflowMetricsProtocol
from signflow.application.ports.outbox import OutboxReaderProtocol, OutboxWriterProtocol
from signflow.application.ports.reminder_tracking_repository import (
    ReminderTrackingRepositoryProtocol,
)
from signflow.application.ports.signing_oracle import SigningOraclePort, SigningResult
from signflow.application.ports.unit_of_work import (
    UnitOfWorkFactoryProtocol,
    UnitOfWorkProtocol,
)

__all__: list[str] = [
    "AuditEventRepositoryProtocol",
    "ConsentRepositoryProtocol",
    "DocumentStoragePort",
    "EnvelopeRepositoryProtocol",
    "EventBusPort",
    "InvitationTokenRepositoryProtocol",
    "OutboxReaderProtocol",
    "OutboxWriterProtocol",
    "ReminderTrackingRepositoryProtocol",
    "SigningOraclePort",
    "SigningResult",
    "UnitOfWorkFactoryProtocol",
    "UnitOfWorkProtocol",
    "WorkflowMetricsProtocol",
]
