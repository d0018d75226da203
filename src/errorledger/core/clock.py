"""Time source for occurrence stamps.

Records are stamped by the store, never by producers, so every timestamp
in the ledger comes from one ``Clock``. Stored values are UTC ISO strings
with microseconds, which keeps lexical order equal to time order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def as_utc(dt: datetime) -> datetime:
    # naive values are taken to be UTC already
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_stamp(dt: datetime) -> str:
    return as_utc(dt).isoformat(timespec="microseconds")


def parse_stamp(value: str) -> datetime:
    """Parse an ISO8601 string into an aware UTC datetime. Raises ValueError."""
    return as_utc(datetime.fromisoformat(value.strip()))


@dataclass(slots=True)
class SystemClock:
    def now(self) -> datetime:
        return utc_now()


@dataclass(slots=True)
class FrozenClock:
    """Manually driven clock for tests and replays."""

    current: datetime

    def __post_init__(self) -> None:
        self.current = as_utc(self.current)

    def now(self) -> datetime:
        return self.current

    def set(self, dt: datetime) -> None:
        self.current = as_utc(dt)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        self.current = self.current + (delta if delta is not None else timedelta(**kwargs))
        return self.current
