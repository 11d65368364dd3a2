"""Test helpers for signflow tests.

This package contains reusable test utilities and fake implementations
for dependency injection in unit tests.

Helpers:
    FakeClock: Controllable time source for deterministic tests
    SigningHarness: Coordinator wired to the in-memory stubs

Usage:
    from tests.helpers import FakeClock, SigningHarness
"""

from tests.helpers.fake_clock import FakeClock
from tests.helpers.signing_harness import SigningHarness

__all__ = ["FakeClock", "SigningHarness"]
