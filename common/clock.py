"""
Purpose: Injectable time source.
What it does:
Every component that needs "now" takes a Clock so sweeps, rankings and
scheduler ticks can be driven deterministically from tests.

Rule: Always timezone-aware datetimes.
"""

from __future__ import annotations

from datetime import datetime, timedelta


class Clock:
    """Base clock. Subclasses return an aware datetime."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock in the host's local timezone (time-of-day heuristics use local hours)."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class FrozenClock(Clock):
    """
    A clock that only moves when told to.
    """

    def __init__(self, current: datetime):
        if current.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current
