# cafe_engine/domain/session_clock.py
"""
Live remaining-time projection for a running session.

Everything here is a pure function of the persisted start time, the total
booked hours (duration + extended time) and the caller's notion of "now",
so any client can re-derive the same numbers without keeping its own
countdown state.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

MS_PER_HOUR = 60 * 60 * 1000


@dataclass(frozen=True)
class SessionRemaining:
    expired: bool
    remaining_ms: int
    percentage: float
    end_time: datetime
    remaining_minutes: int


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def session_end_time(session_start_time: datetime, total_hours: float) -> datetime:
    return as_utc(session_start_time) + timedelta(hours=total_hours)


def remaining(
    session_start_time: datetime,
    total_hours: float,
    now: datetime,
) -> SessionRemaining:
    end_time = session_end_time(session_start_time, total_hours)
    remaining_ms = math.floor((end_time - as_utc(now)) / timedelta(milliseconds=1))
    total_ms = total_hours * MS_PER_HOUR

    if remaining_ms <= 0 or total_ms <= 0:
        return SessionRemaining(
            expired=True,
            remaining_ms=min(remaining_ms, 0),
            percentage=0.0,
            end_time=end_time,
            remaining_minutes=0,
        )

    percentage = max(0.0, min(100.0, remaining_ms / total_ms * 100))
    return SessionRemaining(
        expired=False,
        remaining_ms=remaining_ms,
        percentage=percentage,
        end_time=end_time,
        remaining_minutes=math.ceil(remaining_ms / 60000),
    )
