"""
Clock sources.

All engine timestamps are naive UTC, matching the database columns.
"""

from datetime import datetime, timezone
from typing import Protocol


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ClockSource(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """A clock that only moves when told to. Used by tests and replays."""

    def __init__(self, current: datetime):
        self.current = to_naive_utc(current)

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        self.current = to_naive_utc(current)
