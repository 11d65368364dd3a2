"""Prometheus monitoring."""

from signflow.infrastructure.monitoring.metrics import (
    METRICS_CONTENT_TYPE,
    PrometheusWorkflowMetrics,
    generate_metrics,
    get_metrics_collector,
    reset_metrics_collector,
)

__all__: list[str] = [
    "METRICS_CONTENT_TYPE",
    "PrometheusWorkflowMetrics",
    "generate_metrics",
    "get_metrics_collector",
    "reset_metrics_collector",
]
