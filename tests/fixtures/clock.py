"""Controllable clock for time dependent tests."""

from datetime import UTC, datetime, timedelta


class FrozenClock:
    """Clock returning a fixed time until advanced."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        """Move the clock forward by a timedelta given as keywords."""
        self.now += timedelta(**delta)
