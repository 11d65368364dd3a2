"""Outbox dispatch worker.

Drains PENDING outbox records on a fixed poll interval. The coordinator
already attempts an immediate dispatch after each commit; this worker
picks up whatever that best-effort step left behind (publisher crash,
broker outage, process restart).

A full batch is followed immediately by the next one; a short or empty
batch waits for the poll interval. A failing pass is logged and retried
on the next tick.

Environment Variables:
- SIGNFLOW_OUTBOX_POLL_SECONDS: Poll interval in seconds (default: 1.0)
- DATABASE_URL: When set, drain the PostgreSQL outbox the coordinator writes to
- SIGNFLOW_OUTBOX_BATCH_SIZE: Records per pass, see signflow.config.signing_config
- KAFKA_BOOTSTRAP_SERVERS: Kafka brokers to publish to
"""

from __future__ import annotations

import asyncio
import os
import signal
from dataclasses import dataclass
from typing import Any

from structlog import get_logger

from signflow.application.observability.correlation import correlation_scope
from signflow.application.services.outbox_publisher_service import (
    DispatchResult,
    OutboxPublisherService,
)

logger = get_logger()

DEFAULT_POLL_INTERVAL_SECONDS = 1.0


def _get_env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        parsed = float(value)
        return parsed if parsed > 0 else default
    except ValueError:
        logger.warning("invalid_env_value", name=name, value=value, default=default)
        return default


@dataclass
class DispatchWorkerMetrics:
    """Counters tracked by the dispatch worker."""

    passes: int = 0
    failed_passes: int = 0
    dispatched: int = 0
    failed: int = 0


class OutboxDispatchWorker:
    """Polls the outbox and hands pending records to the publisher."""

    def __init__(
        self,
        publisher: OutboxPublisherService,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        batch_size: int | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            publisher: Publisher that reads and dispatches outbox records.
            poll_interval_seconds: Wait between passes that drained the outbox.
            batch_size: Records per pass; publisher default when None.
        """
        self._publisher = publisher
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._stop_event = asyncio.Event()
        self._running = False
        self._metrics = DispatchWorkerMetrics()
        self._log = logger.bind(component="outbox_worker")

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_once(self) -> DispatchResult:
        """Run a single dispatch pass under its own correlation id."""
        with correlation_scope():
            result = await self._publisher.dispatch_pending(self._batch_size)
        self._metrics.passes += 1
        self._metrics.dispatched += result.dispatched
        self._metrics.failed += result.failed
        if result.attempted:
            self._log.info(
                "outbox_pass_completed",
                dispatched=result.dispatched,
                failed=result.failed,
                skipped=result.skipped,
            )
        return result

    async def run(self) -> None:
        """Run passes until stop() is called."""
        self._running = True
        self._stop_event.clear()
        self._log.info("outbox_worker_started", poll_interval_seconds=self._poll_interval)
        try:
            while not self._stop_event.is_set():
                full_batch = False
                try:
                    result = await self.run_once()
                    full_batch = self._batch_size is not None and result.attempted >= self._batch_size
                except Exception as e:
                    self._metrics.failed_passes += 1
                    self._log.error(
                        "outbox_pass_failed", error=str(e), error_type=type(e).__name__
                    )
                if full_batch:
                    continue
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            self._log.info("outbox_worker_stopped", **self.get_metrics())

    def stop(self) -> None:
        """Signal the worker to stop after the current pass."""
        self._log.info("outbox_worker_stop_requested")
        self._stop_event.set()

    def get_metrics(self) -> dict[str, Any]:
        """Get worker metrics for monitoring."""
        return {
            "passes": self._metrics.passes,
            "failed_passes": self._metrics.failed_passes,
            "dispatched": self._metrics.dispatched,
            "failed": self._metrics.failed,
            "running": self._running,
        }


async def run_outbox_dispatch_worker(
    publisher: OutboxPublisherService,
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    batch_size: int | None = None,
) -> None:
    """Run the dispatch worker with graceful shutdown on SIGINT/SIGTERM."""
    worker = OutboxDispatchWorker(
        publisher, poll_interval_seconds=poll_interval_seconds, batch_size=batch_size
    )
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        worker.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    await worker.run()


async def _run_from_env() -> None:
    from signflow.bootstrap.database import close_database_engine
    from signflow.bootstrap.logging import configure_structlog
    from signflow.bootstrap.signing import (
        ensure_signing_schema,
        get_outbox_publisher,
        get_signing_config,
    )

    configure_structlog(os.environ.get("ENVIRONMENT", "development"))
    poll_interval = _get_env_float("SIGNFLOW_OUTBOX_POLL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)

    await ensure_signing_schema()
    try:
        await run_outbox_dispatch_worker(
            get_outbox_publisher(),
            poll_interval,
            batch_size=get_signing_config().outbox_batch_size,
        )
    finally:
        await close_database_engine()


if __name__ == "__main__":
    asyncio.run(_run_from_env())
