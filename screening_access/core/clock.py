"""
Clock sources used by every expiry and cooldown computation.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FrozenClock:
    """
    Manually driven clock for tests and demos.

    Time only moves when ``advance`` or ``set`` is called.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_aware(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def set(self, moment: datetime) -> None:
        self._now = ensure_aware(moment)

    def advance(self, **delta) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


system_clock = SystemClock()
