"""
Clock -- injectable time source.

Services receive a Clock through their constructor and never call
``datetime.now()`` or ``date.today()`` themselves, so default closing
dates, event timestamps and soft-delete stamps are reproducible in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware UTC ``datetime``.
        - ``today()`` is the calendar date of ``now()``.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Test clock frozen at one instant (default 2025-03-01 12:00 UTC)."""

    def __init__(self, frozen_at: datetime | None = None):
        self._frozen_at = frozen_at or datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._frozen_at
