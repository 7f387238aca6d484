# cafe_engine/domain/policies.py

from datetime import datetime, timedelta

from cafe_engine.domain.exceptions import (
    BookingValidationError,
    CancellationWindowClosedError,
    WrongStateError,
)
from cafe_engine.domain.session_clock import as_utc
from cafe_engine.domain.state_machine import BookingStatus

CANCELLATION_WINDOW = timedelta(minutes=15)
HOUR_STEP = 0.5
MAX_SESSION_HOURS = 24
CANCELLABLE_STATUSES = frozenset({BookingStatus.BOOKED, BookingStatus.ACTIVE})
EXTENDABLE_STATUSES = frozenset({BookingStatus.BOOKED, BookingStatus.ACTIVE})


def is_half_hour_multiple(hours: float) -> bool:
    return hours > 0 and float(hours * 2).is_integer()


def validate_hours(hours: float, field: str = "hours") -> None:
    if not is_half_hour_multiple(hours):
        raise BookingValidationError(
            f"{field} must be a positive multiple of {HOUR_STEP} hours"
        )
    validate_total_hours(hours, field)


def validate_total_hours(hours: float, field: str = "hours") -> None:
    if hours > MAX_SESSION_HOURS:
        raise BookingValidationError(
            f"{field} cannot take a session past {MAX_SESSION_HOURS} hours"
        )


def can_cancel(booking, now: datetime) -> bool:
    """
    A booking may be cancelled while Booked or Active, unless it was
    permanently cancelled, and only within the first 15 minutes of a
    started session. Bookings that never started have no time bound.
    """
    if booking.status not in CANCELLABLE_STATUSES or booking.permanently_cancelled:
        return False
    if booking.session_start_time is None:
        return True
    return as_utc(now) - as_utc(booking.session_start_time) < CANCELLATION_WINDOW


def ensure_cancellable(booking, now: datetime) -> None:
    if booking.status not in CANCELLABLE_STATUSES or booking.permanently_cancelled:
        raise WrongStateError(
            f"Cannot cancel booking in status {booking.status.value}."
        )
    if not can_cancel(booking, now):
        raise CancellationWindowClosedError(
            "Cancellation is only allowed within 15 minutes of the session start."
        )
