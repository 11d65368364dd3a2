"""Kafka implementation of EventBusPort.

Each integration event type maps to its own topic, ``<prefix>.<type>``,
and messages are keyed by envelope id so one envelope's events stay in
order on one partition. publish() returns only after the broker has
acknowledged the message; the outbox relies on that before marking a
record dispatched.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import structlog
from confluent_kafka import Producer

DEFAULT_TOPIC_PREFIX = "signflow"
CLOSE_FLUSH_SECONDS = 5.0

logger = structlog.get_logger(__name__)


class KafkaPublishError(Exception):
    """The broker did not acknowledge a message in time, or rejected it."""


@dataclass
class _DeliveryReport:
    """Filled in by the producer's delivery callback."""

    error: str | None = None
    partition: int | None = None
    offset: int | None = None

    def __call__(self, err: Any, msg: Any) -> None:
        if err:
            self.error = str(err)
            return
        self.partition = msg.partition()
        self.offset = msg.offset()


class KafkaEventBus:
    """Publishes outbox messages with an idempotent confluent-kafka producer."""

    def __init__(
        self,
        bootstrap_servers: str,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
        timeout_seconds: float = 10.0,
        producer: Any = None,
    ) -> None:
        """Create the adapter; the producer connects on first publish.

        Args:
            bootstrap_servers: Comma-separated broker list.
            topic_prefix: First segment of every topic name.
            timeout_seconds: Upper bound on one publish, delivery included.
            producer: Ready-made producer, used instead of building one.
        """
        self._bootstrap_servers = bootstrap_servers
        self._topic_prefix = topic_prefix
        self._timeout = timeout_seconds
        self._producer = producer

    def producer_config(self) -> dict[str, Any]:
        timeout_ms = int(self._timeout * 1000)
        return {
            "bootstrap.servers": self._bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "message.timeout.ms": timeout_ms,
            "request.timeout.ms": timeout_ms,
            "retries": 3,
            "retry.backoff.ms": 100,
        }

    def _get_producer(self) -> Any:
        if self._producer is None:
            self._producer = Producer(self.producer_config())
            logger.info("kafka_producer_created", bootstrap_servers=self._bootstrap_servers)
        return self._producer

    def topic_for(self, event_type: str) -> str:
        return f"{self._topic_prefix}.{event_type}"

    async def publish(self, event_type: str, message: dict[str, Any], key: str) -> None:
        """Send one message and wait for its delivery report.

        The blocking flush runs in a worker thread.

        Raises:
            KafkaPublishError: If delivery failed or did not finish in time.
        """
        report = _DeliveryReport()
        producer = self._get_producer()
        producer.produce(
            topic=self.topic_for(event_type),
            key=key.encode("utf-8"),
            value=json.dumps(message, sort_keys=True).encode("utf-8"),
            headers=[
                ("event_id", str(message.get("event_id", "")).encode("utf-8")),
                ("event_type", event_type.encode("utf-8")),
            ],
            callback=report,
        )
        pending = await asyncio.to_thread(producer.flush, self._timeout)
        if pending > 0:
            raise KafkaPublishError(
                f"delivery timeout after {self._timeout}s, {pending} message(s) pending"
            )
        if report.error:
            raise KafkaPublishError(report.error)
        logger.debug(
            "kafka_event_published",
            event_type=event_type,
            partition=report.partition,
            offset=report.offset,
        )

    def close(self) -> None:
        """Flush outstanding messages and drop the producer."""
        if self._producer is None:
            return
        self._producer.flush(CLOSE_FLUSH_SECONDS)
        self._producer = None
        logger.info("kafka_event_bus_closed")
