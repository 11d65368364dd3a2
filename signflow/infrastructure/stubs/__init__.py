"""In-memory stubs for testing and local development."""

from signflow.infrastructure.stubs.document_storage_stub import InMemoryDocumentStorage
from signflow.infrastructure.stubs.event_bus_stub import RecordingEventBus
from signflow.infrastructure.stubs.in_memory_store import (
    InMemorySigningStore,
    InMemoryUnitOfWork,
)
from signflow.infrastructure.stubs.signing_oracle_stub import HmacSigningOracleStub

__all__: list[str] = [
    "HmacSigningOracleStub",
    "InMemoryDocumentStorage",
    "InMemorySigningStore",
    "InMemoryUnitOfWork",
    "RecordingEventBus",
]
