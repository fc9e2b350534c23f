"""Injectable time providers so scoring and allowance logic never read the wall clock directly."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


def utcnow() -> datetime:
    """Return the current UTC instant as a naive datetime."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Clock backed by the host's UTC time."""

    def now(self) -> datetime:
        return utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Manually controlled clock used by tests and admin "time travel"."""

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def today(self) -> date:
        return self._moment.date()

    def set(self, moment: datetime) -> None:
        self._moment = moment

    def advance(self, **delta: float) -> datetime:
        self._moment = self._moment + timedelta(**delta)
        return self._moment


__all__ = ["Clock", "FixedClock", "SystemClock", "utcnow"]
