"""Prometheus workflow metrics.

Counters for envelope transitions, signature outcomes, issued tokens and
outbox dispatch results. Every counter carries service and environment
labels.
"""

import os
import threading

from prometheus_client import CollectorRegistry, Counter, generate_latest

from signflow.application.ports.metrics_collector import WorkflowMetricsProtocol

# Content type for Prometheus metrics endpoint
METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

# Thread lock for singleton initialization
_collector_lock = threading.Lock()


class PrometheusWorkflowMetrics(WorkflowMetricsProtocol):
    """Collects workflow counters on a Prometheus registry.

    Attributes:
        envelope_transitions_total: Envelopes entering each status.
        signatures_total: Sign and decline outcomes.
        tokens_issued_total: Invitation tokens issued per purpose.
        outbox_dispatched_total: Outbox dispatch results.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize the counters.

        Args:
            registry: Optional custom registry for testing isolation.
        """
        self._registry = registry or CollectorRegistry()
        self._environment = os.environ.get("ENVIRONMENT", "development")
        self._service_name = os.environ.get("SERVICE_NAME", "signflow")

        self.envelope_transitions_total = Counter(
            name="signflow_envelope_transitions_total",
            documentation="Envelope status transitions",
            labelnames=["service", "environment", "status"],
            registry=self._registry,
        )
        self.signatures_total = Counter(
            name="signflow_signatures_total",
            documentation="Sign attempt outcomes",
            labelnames=["service", "environment", "outcome"],
            registry=self._registry,
        )
        self.tokens_issued_total = Counter(
            name="signflow_tokens_issued_total",
            documentation="Invitation tokens issued",
            labelnames=["service", "environment", "purpose"],
            registry=self._registry,
        )
        self.outbox_dispatched_total = Counter(
            name="signflow_outbox_dispatched_total",
            documentation="Outbox dispatch results",
            labelnames=["service", "environment", "result"],
            registry=self._registry,
        )

    def _labels(self) -> dict[str, str]:
        return {"service": self._service_name, "environment": self._environment}

    def get_registry(self) -> CollectorRegistry:
        return self._registry

    def record_envelope_transition(self, status: str) -> None:
        self.envelope_transitions_total.labels(**self._labels(), status=status).inc()

    def record_signature(self, outcome: str) -> None:
        self.signatures_total.labels(**self._labels(), outcome=outcome).inc()

    def record_token_issued(self, purpose: str) -> None:
        self.tokens_issued_total.labels(**self._labels(), purpose=purpose).inc()

    def record_outbox_dispatch(self, result: str) -> None:
        self.outbox_dispatched_total.labels(**self._labels(), result=result).inc()


_metrics_collector: PrometheusWorkflowMetrics | None = None


def get_metrics_collector() -> PrometheusWorkflowMetrics:
    """Get the singleton collector instance (thread-safe).

    Uses double-checked locking for lazy initialization.
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _collector_lock:
            if _metrics_collector is None:
                _metrics_collector = PrometheusWorkflowMetrics()
    return _metrics_collector


def generate_metrics() -> bytes:
    """Generate Prometheus metrics in exposition format."""
    return generate_latest(get_metrics_collector().get_registry())


def reset_metrics_collector() -> None:
    """Reset the singleton collector (for testing only)."""
    global _metrics_collector
    with _collector_lock:
        _metrics_collector = None
