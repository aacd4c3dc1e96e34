"""Absolute UTC time as non-leap seconds and nanoseconds since the UNIX epoch."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

INVALID_DATETIME = "Invalid DateTime"
"""Error text used when a timestamp cannot be represented as a datetime."""

NANOSECONDS_PER_SECOND = 1_000_000_000
_U32_MAX = 0xFFFF_FFFF
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, order=True)
class Timestamp:
    """A point in time in UTC.

    ``sec`` counts non-leap seconds since the UNIX epoch and ``nsec`` the
    nanoseconds since the start of that second. Ordering compares ``sec``
    first and ``nsec`` second.
    """

    sec: int
    nsec: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.nsec <= _U32_MAX:
            raise ValueError(f"nsec out of range: {self.nsec}")

    @classmethod
    def now(cls) -> Timestamp:
        """Return the current system time."""
        sec, nsec = divmod(time.time_ns(), NANOSECONDS_PER_SECOND)
        return cls(sec, nsec)

    @classmethod
    def from_datetime(cls, dt: datetime) -> Timestamp:
        """Build a timestamp from a datetime; a naive datetime is taken as UTC."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt - _EPOCH
        nanos = (
            (delta.days * 86_400 + delta.seconds) * NANOSECONDS_PER_SECOND
            + delta.microseconds * 1_000
        )
        sec, nsec = divmod(nanos, NANOSECONDS_PER_SECOND)
        return cls(sec, nsec)

    def to_datetime(self) -> datetime:
        """Return an aware UTC datetime (microsecond precision).

        Raises ValueError if the timestamp cannot be represented.
        """
        if self.nsec >= NANOSECONDS_PER_SECOND:
            raise ValueError(INVALID_DATETIME)
        try:
            return _EPOCH + timedelta(seconds=self.sec, microseconds=self.nsec // 1_000)
        except OverflowError as exc:
            raise ValueError(INVALID_DATETIME) from exc

    def to_dict(self) -> dict[str, int]:
        """Return the serializable form of the timestamp."""
        return {"sec": self.sec, "nsec": self.nsec}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Timestamp:
        """Build a timestamp from its serializable form."""
        try:
            return cls(int(data["sec"]), int(data["nsec"]))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"invalid timestamp data: {data!r}") from exc