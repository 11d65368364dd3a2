"""Worker processes.

Workers:
- OutboxDispatchWorker: Drains pending outbox records to the event bus
"""

from signflow.workers.outbox_dispatch_worker import (
    DispatchWorkerMetrics,
    OutboxDispatchWorker,
    run_outbox_dispatch_worker,
)

__all__ = [
    "DispatchWorkerMetrics",
    "OutboxDispatchWorker",
    "run_outbox_dispatch_worker",
]
