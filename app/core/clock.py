"""
Clock abstraction for date-dependent workflow logic.

Services receive a clock instead of calling ``datetime.now()`` directly so
SLA deadlines and the overdue sweep can be driven deterministically in tests.
"""
from datetime import date, datetime, timedelta, timezone


class Clock:
    """Source of the current time."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; can be moved forward explicitly."""

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self.current = current

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self.current = current

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward, e.g. ``clock.advance(days=2)``."""
        self.current = self.current + timedelta(**kwargs)
        return self.current
