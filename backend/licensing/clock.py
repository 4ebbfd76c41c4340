"""
Time source for OTP expiry, token TTLs and stage dates.
Services take a clock so tests can move time deterministically.
"""
from datetime import datetime, timedelta


class Clock:
    """Wall-clock UTC time (naive, matching the DateTime columns)."""

    def now(self) -> datetime:
        return datetime.utcnow()


class FakeClock(Clock):
    """Manually advanced clock for tests and simulations."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2025, 1, 1, 9, 0, 0)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency for the process clock."""
    return system_clock
