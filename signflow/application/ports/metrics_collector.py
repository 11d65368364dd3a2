"""Metrics collector port definition.

Lets the coordinator and the outbox publisher count workflow events
without depending on the metrics backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class WorkflowMetricsProtocol(ABC):
    """Abstract interface for workflow metrics."""

    @abstractmethod
    def record_envelope_transition(self, status: str) -> None:
        """Count an envelope entering ``status``."""
        ...

    @abstractmethod
    def record_signature(self, outcome: str) -> None:
        """Count a sign attempt outcome ("signed", "declined", "rejected", "failed")."""
        ...

    @abstractmethod
    def record_token_issued(self, purpose: str) -> None:
        """Count an invitation token issued for ``purpose``."""
        ...

    @abstractmethod
    def record_outbox_dispatch(self, result: str) -> None:
        """Count an outbox dispatch result ("dispatched", "retry", "failed")."""
        ...
