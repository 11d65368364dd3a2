"""Domain events: the hash-chained audit trail and outbox records."""

from signflow.domain.events.audit_event import AuditEvent, AuditEventType
from signflow.domain.events.hash_utils import (
    GENESIS_HASH,
    canonical_json,
    compute_content_hash,
    link_hash,
    sha256_hex,
)
from signflow.domain.events.integration_event import (
    IntegrationEventType,
    OutboxRecord,
    OutboxStatus,
)

__all__: list[str] = [
    "GENESIS_HASH",
    "AuditEvent",
    "AuditEventType",
    "IntegrationEventType",
    "OutboxRecord",
    "OutboxStatus",
    "canonical_json",
    "compute_content_hash",
    "link_hash",
    "sha256_hex",
]
