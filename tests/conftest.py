"""
Pytest configuration and shared fixtures for signflow tests.

Testing Standards:
- All async tests use pytest.mark.asyncio (auto mode enabled in pyproject.toml)
- Use AsyncMock for async function mocking
- Unit tests go in tests/unit/<layer>/
- In-memory stubs from signflow.infrastructure.stubs are the default collaborators
"""

import pytest

from tests.helpers import FakeClock, SigningHarness


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio as the async backend."""
    return "asyncio"


@pytest.fixture
def project_version() -> str:
    """Provide the current project version for tests."""
    from signflow import __version__

    return __version__


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provide a frozen clock."""
    return FakeClock()


@pytest.fixture
def harness() -> SigningHarness:
    """Provide a coordinator wired to fresh in-memory stubs."""
    return SigningHarness()
