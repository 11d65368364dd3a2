"""FakeClock - Controllable time source for deterministic tests.

The coordinator takes a ``clock`` callable. FakeClock is such a callable
whose value only changes when a test advances or sets it.

Usage:
    >>> clock = FakeClock()
    >>> coordinator = SigningCoordinatorService(..., clock=clock)
    >>> clock.advance(hours=2)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


class FakeClock:
    """Frozen clock that moves only when told to.

    Defaults to the real current time (second precision) so records made
    with the fake clock and records made by stubs using the wall clock
    stay comparable.
    """

    def __init__(self, frozen_at: datetime | None = None) -> None:
        if frozen_at is None:
            frozen_at = datetime.now(timezone.utc).replace(microsecond=0)
        if frozen_at.tzinfo is None:
            frozen_at = frozen_at.replace(tzinfo=timezone.utc)
        self._current_time = frozen_at

    def __call__(self) -> datetime:
        return self._current_time

    def now(self) -> datetime:
        return self._current_time

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> None:
        """Advance by a timedelta or timedelta keyword arguments.

        Raises:
            ValueError: If the advance is negative.
        """
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("Cannot advance time backwards; use set_time()")
        self._current_time += step

    def set_time(self, when: datetime) -> None:
        self._current_time = when
