"""Clock abstraction so expansion and extension are deterministic in tests."""

from datetime import datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Clock backed by the local wall time."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock:
    """Clock frozen at a given instant until advanced.

    Example:
        >>> clock = FixedClock(datetime(2024, 3, 1, 8, 0))
        >>> clock.advance(days=1)
        >>> clock.now()
        datetime.datetime(2024, 3, 2, 8, 0)
    """

    def __init__(self, instant: datetime):
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = instant

    def advance(self, **delta: float) -> None:
        self._instant += timedelta(**delta)
