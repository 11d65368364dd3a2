"""Shared logging behaviour for signflow application services.

Every service binds one structlog logger at construction and derives an
operation-scoped child from it per call, so each line emitted while serving
a request carries the service name, the operation and the request's
correlation id.

    class EnvelopeLookupService(LoggingMixin):
        def __init__(self, store: SigningStorePort) -> None:
            self._store = store
            self._init_logger()

        async def find(self, envelope_id: str) -> Envelope:
            log = self._log_operation("find", envelope_id=envelope_id)
            log.debug("lookup_started")
            ...
"""

import structlog

from signflow.application.observability.correlation import get_correlation_id
from signflow.domain.exceptions import AccessDeniedError


class LoggingMixin:
    """Binds a per-service logger and builds per-operation loggers from it."""

    _log: structlog.BoundLogger

    def _init_logger(self, component: str = "signing") -> None:
        """Bind the service-level logger.

        Args:
            component: Coarse grouping used to filter logs by subsystem
                ("signing", "access", "outbox", ...).
        """
        self._log = structlog.get_logger().bind(
            service=type(self).__name__,
            component=component,
        )

    def _log_operation(self, operation: str, **context: object) -> structlog.BoundLogger:
        """Return a logger bound to one operation and the current correlation id."""
        return self._log.bind(
            operation=operation,
            correlation_id=get_correlation_id(),
            **context,
        )

    @staticmethod
    def _access_denied(
        log: structlog.BoundLogger,
        reason: str,
        message: str | None = None,
        **context: object,
    ) -> AccessDeniedError:
        """Record a refused request and build the error for the caller to raise.

        Args:
            log: Operation logger the refusal is written to at WARNING.
            reason: Short machine-readable reason, logged as ``reason``.
            message: Human-readable error message; defaults to ``reason``.
            **context: Extra fields for the log line only.

        Returns:
            AccessDeniedError carrying ``message``.
        """
        log.warning("access_denied", reason=reason, **context)
        return AccessDeniedError(message or reason)
