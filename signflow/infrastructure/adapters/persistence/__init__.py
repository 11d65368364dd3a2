"""PostgreSQL persistence adapters."""

from signflow.infrastructure.adapters.persistence.outbox_repository import (
    OUTBOX_TABLE_DDL,
    PostgresOutboxRepository,
)
from signflow.infrastructure.adapters.persistence.postgres_store import (
    PostgresSigningStore,
    PostgresUnitOfWork,
)

__all__ = [
    "OUTBOX_TABLE_DDL",
    "PostgresOutboxRepository",
    "PostgresSigningStore",
    "PostgresUnitOfWork",
]
