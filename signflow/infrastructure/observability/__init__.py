"""Logging configuration."""

from signflow.infrastructure.observability.logging import configure_structlog

__all__: list[str] = ["configure_structlog"]
