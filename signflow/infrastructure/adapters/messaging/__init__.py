"""Event bus adapters."""

from signflow.infrastructure.adapters.messaging.kafka_event_bus import (
    KafkaEventBus,
    KafkaPublishError,
)

__all__ = ["KafkaEventBus", "KafkaPublishError"]
