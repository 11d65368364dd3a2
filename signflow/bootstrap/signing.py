"""Bootstrap wiring for the signing coordinator.

Builds the coordinator and its collaborators once per process. Persistence
is PostgreSQL when DATABASE_URL is set and the in-memory stub otherwise;
object storage and the signing oracle are the in-memory stubs; the event
bus is Kafka when KAFKA_BOOTSTRAP_SERVERS is set.

Environment Variables:
- DATABASE_URL: PostgreSQL for envelopes, audit chains and the outbox (optional)
- KAFKA_BOOTSTRAP_SERVERS: Kafka brokers for the event bus (optional)
- SIGNFLOW_TOPIC_PREFIX: Topic prefix for integration events (default: signflow)
- SIGNFLOW_ORACLE_SECRET: Secret of the HMAC signing oracle stub
- SIGNFLOW_*: Signing configuration, see signflow.config.signing_config
"""

from __future__ import annotations

import os

from structlog import get_logger

from signflow.application.ports.document_storage import DocumentStoragePort
from signflow.application.ports.event_bus import EventBusPort
from signflow.application.ports.signing_oracle import SigningOraclePort
from signflow.application.services.outbox_publisher_service import OutboxPublisherService
from signflow.application.services.signing_coordinator_service import (
    SigningCoordinatorService,
)
from signflow.bootstrap.database import get_session_factory
from signflow.config.signing_config import SigningConfig
from signflow.infrastructure.adapters.messaging.kafka_event_bus import (
    DEFAULT_TOPIC_PREFIX,
    KafkaEventBus,
)
from signflow.infrastructure.adapters.persistence.postgres_store import PostgresSigningStore
from signflow.infrastructure.monitoring.metrics import get_metrics_collector
from signflow.infrastructure.stubs.document_storage_stub import InMemoryDocumentStorage
from signflow.infrastructure.stubs.event_bus_stub import RecordingEventBus
from signflow.infrastructure.stubs.in_memory_store import InMemorySigningStore
from signflow.infrastructure.stubs.signing_oracle_stub import HmacSigningOracleStub

logger = get_logger()

_config: SigningConfig | None = None
_store: InMemorySigningStore | PostgresSigningStore | None = None
_storage: DocumentStoragePort | None = None
_oracle: SigningOraclePort | None = None
_event_bus: EventBusPort | None = None
_publisher: OutboxPublisherService | None = None
_coordinator: SigningCoordinatorService | None = None


def get_signing_config() -> SigningConfig:
    """Get signing configuration, read from the environment once."""
    global _config
    if _config is None:
        _config = SigningConfig.from_environment()
    return _config


def get_signing_store() -> InMemorySigningStore | PostgresSigningStore:
    """Get the persistence store: PostgreSQL when DATABASE_URL is set."""
    global _store
    if _store is None:
        if os.environ.get("DATABASE_URL"):
            _store = PostgresSigningStore(get_session_factory())
            logger.info("signing_store_configured", kind="postgres")
        else:
            _store = InMemorySigningStore()
            logger.info("signing_store_configured", kind="in_memory")
    return _store


async def ensure_signing_schema() -> None:
    """Create the PostgreSQL tables when the store is backed by PostgreSQL."""
    store = get_signing_store()
    if isinstance(store, PostgresSigningStore):
        await store.ensure_schema()


def get_document_storage() -> DocumentStoragePort:
    """Get object storage instance."""
    global _storage
    if _storage is None:
        _storage = InMemoryDocumentStorage()
    return _storage


def get_signing_oracle() -> SigningOraclePort:
    """Get signing oracle instance."""
    global _oracle
    if _oracle is None:
        secret = os.environ.get("SIGNFLOW_ORACLE_SECRET", "signflow-dev-secret")
        _oracle = HmacSigningOracleStub(secret=secret.encode("utf-8"))
    return _oracle


def get_event_bus() -> EventBusPort:
    """Get event bus instance: Kafka when configured, else the recording stub."""
    global _event_bus
    if _event_bus is None:
        servers = os.environ.get("KAFKA_BOOTSTRAP_SERVERS")
        if servers:
            _event_bus = KafkaEventBus(
                bootstrap_servers=servers,
                topic_prefix=os.environ.get("SIGNFLOW_TOPIC_PREFIX", DEFAULT_TOPIC_PREFIX),
            )
            logger.info("event_bus_configured", kind="kafka", bootstrap_servers=servers)
        else:
            _event_bus = RecordingEventBus()
            logger.info("event_bus_configured", kind="recording_stub")
    return _event_bus


def get_outbox_publisher() -> OutboxPublisherService:
    """Get outbox publisher reading the store's outbox."""
    global _publisher
    if _publisher is None:
        _publisher = OutboxPublisherService(
            outbox=get_signing_store(),
            event_bus=get_event_bus(),
            config=get_signing_config(),
            metrics=get_metrics_collector(),
        )
    return _publisher


def get_signing_coordinator() -> SigningCoordinatorService:
    """Get the signing coordinator instance."""
    global _coordinator
    if _coordinator is None:
        _coordinator = SigningCoordinatorService(
            uow_factory=get_signing_store(),
            storage=get_document_storage(),
            oracle=get_signing_oracle(),
            config=get_signing_config(),
            outbox_publisher=get_outbox_publisher(),
            metrics=get_metrics_collector(),
        )
    return _coordinator


def set_signing_config(config: SigningConfig) -> None:
    """Set custom signing config for testing."""
    global _config
    _config = config


def set_event_bus(event_bus: EventBusPort) -> None:
    """Set custom event bus for testing."""
    global _event_bus
    _event_bus = event_bus


def reset_signing_dependencies() -> None:
    """Reset all singleton instances for testing."""
    global _config
    global _store
    global _storage
    global _oracle
    global _event_bus
    global _publisher
    global _coordinator

    _config = None
    _store = None
    _storage = None
    _oracle = None
    _event_bus = None
    _publisher = None
    _coordinator = None
