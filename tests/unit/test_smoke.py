"""
Smoke tests to verify all critical dependencies are installed correctly.

These tests confirm that:
1. Python 3.11+ is installed (required for asyncio.TaskGroup)
2. All core dependencies are importable
3. Project version is accessible

Run with: pytest tests/unit/test_smoke.py -v
"""

import sys

import pytest


class TestPythonVersion:
    """Verify Python version requirements."""

    def test_python_311_or_higher(self) -> None:
        """Python 3.11+ is required for asyncio.TaskGroup support."""
        assert sys.version_info >= (3, 11), (
            f"Python 3.11+ required for asyncio.TaskGroup, "
            f"got {sys.version_info.major}.{sys.version_info.minor}"
        )


class TestCoreDependencies:
    """Verify runtime dependencies."""

    def test_structlog_import(self) -> None:
        """structlog must be importable."""
        import structlog

        assert structlog.get_logger() is not None

    def test_prometheus_client_import(self) -> None:
        """prometheus_client must be importable."""
        from prometheus_client import CollectorRegistry, Counter

        counter = Counter("smoke_total", "smoke", registry=CollectorRegistry())
        counter.inc()

    def test_sqlalchemy_asyncio(self) -> None:
        """SQLAlchemy async extension must be importable."""
        from sqlalchemy.ext.asyncio import async_sessionmaker

        assert async_sessionmaker is not None

    def test_asyncpg_import(self) -> None:
        """asyncpg is the PostgreSQL driver."""
        import asyncpg

        assert asyncpg is not None

    def test_confluent_kafka_import(self) -> None:
        """confluent-kafka must be importable."""
        from confluent_kafka import Producer

        assert Producer is not None

    def test_uuid7_available(self) -> None:
        """uuid6 provides time-ordered UUIDv7 ids."""
        from uuid6 import uuid7

        assert uuid7().version == 7


class TestAsyncSupport:
    """Verify async test support."""

    @pytest.mark.asyncio
    async def test_async_test_runs(self) -> None:
        """pytest-asyncio runs coroutine tests."""
        import asyncio

        await asyncio.sleep(0)


class TestProjectSetup:
    """Verify project setup."""

    def test_version_accessible(self, project_version: str) -> None:
        """Project version must be accessible."""
        assert project_version == "0.1.0"

    def test_package_layers_importable(self) -> None:
        """Each layer package imports cleanly."""
        import signflow.application
        import signflow.bootstrap
        import signflow.config
        import signflow.domain
        import signflow.infrastructure
        import signflow.workers

        assert signflow.workers is not None
