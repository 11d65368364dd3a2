"""Outbox publisher service.

Reads PENDING outbox records, publishes them to the event bus and marks
them dispatched. Publishing is at-least-once: a crash between publish and
mark leaves the record PENDING and it is published again, which consumers
absorb by de-duplicating on event_id. A record that keeps failing becomes
FAILED after the configured number of attempts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from signflow.application.ports.event_bus import EventBusPort
from signflow.application.ports.metrics_collector import WorkflowMetricsProtocol
from signflow.application.ports.outbox import OutboxReaderProtocol
from signflow.application.services.base import LoggingMixin
from signflow.config.signing_config import SigningConfig
from signflow.domain.events.integration_event import OutboxRecord


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of one dispatch pass."""

    dispatched: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def attempted(self) -> int:
        return self.dispatched + self.failed + self.skipped


class OutboxPublisherService(LoggingMixin):
    """Publishes staged outbox records to the event bus."""

    def __init__(
        self,
        outbox: OutboxReaderProtocol,
        event_bus: EventBusPort,
        config: SigningConfig,
        metrics: WorkflowMetricsProtocol | None = None,
    ) -> None:
        self._outbox = outbox
        self._event_bus = event_bus
        self._config = config
        self._metrics = metrics
        self._init_logger(component="outbox")

    async def dispatch_pending(self, limit: int | None = None) -> DispatchResult:
        """Dispatch up to ``limit`` PENDING records in commit order."""
        records = await self._outbox.fetch_pending(limit or self._config.outbox_batch_size)
        return await self._dispatch(records)

    async def dispatch_records(self, record_ids: list[str]) -> DispatchResult:
        """Dispatch specific records, skipping any no longer PENDING."""
        if not record_ids:
            return DispatchResult()
        records = await self._outbox.fetch_pending(len(record_ids), record_ids=record_ids)
        return await self._dispatch(records)

    async def _dispatch(self, records: list[OutboxRecord]) -> DispatchResult:
        dispatched = failed = skipped = 0
        for record in records:
            log = self._log_operation(
                "dispatch",
                envelope_id=record.envelope_id,
                event_id=record.id,
                event_type=record.event_type.value,
            )
            try:
                await self._event_bus.publish(
                    record.event_type.value, record.to_message(), key=record.envelope_id
                )
            except Exception as e:
                failed += 1
                await self._outbox.mark_failed_attempt(
                    record.id, f"{type(e).__name__}: {e}", self._config.outbox_max_attempts
                )
                final = record.attempts + 1 >= self._config.outbox_max_attempts
                self._count("failed" if final else "retry")
                log.warning(
                    "outbox_dispatch_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    attempt=record.attempts + 1,
                    final=final,
                )
                continue
            if await self._outbox.mark_dispatched(record.id, datetime.now(timezone.utc)):
                dispatched += 1
                self._count("dispatched")
                log.debug("outbox_record_dispatched")
            else:
                # Another dispatcher got there first; the duplicate publish is harmless
                skipped += 1
        return DispatchResult(dispatched=dispatched, failed=failed, skipped=skipped)

    def _count(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.record_outbox_dispatch(result)
