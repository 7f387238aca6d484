from datetime import datetime

from cafe_engine.api.schemas.schemas import (
    AssignedTerminalResponse,
    BookingResponse,
    CafeResponse,
    RefundResponse,
    SessionRemainingResponse,
    SystemRequirementResponse,
)
from cafe_engine.domain.policies import can_cancel
from cafe_engine.domain.session_clock import as_utc, remaining, utc_now
from cafe_engine.domain.state_machine import BookingStatus
from cafe_engine.infrastructure.db.models import Booking, Cafe, RefundRecord


def _rupees(paise: int) -> float:
    return paise / 100


def _utc_or_none(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None


def booking_fields(booking: Booking, now: datetime | None = None) -> dict:
    now = now or utc_now()
    session = None
    if booking.status == BookingStatus.ACTIVE and booking.session_start_time is not None:
        clock = remaining(booking.session_start_time, booking.total_hours, now)
        session = SessionRemainingResponse(
            expired=clock.expired,
            remaining_ms=clock.remaining_ms,
            remaining_minutes=clock.remaining_minutes,
            percentage=clock.percentage,
            end_time=clock.end_time,
        )

    return {
        "id": booking.id,
        "cafe_id": booking.cafe_id,
        "source": booking.source,
        "customer_id": booking.customer_id,
        "walk_in_customer_name": booking.walk_in_customer_name,
        "phone_number": booking.phone_number,
        "systems_booked": [
            SystemRequirementResponse.model_validate(item) for item in booking.systems_booked
        ],
        "assigned_systems": [
            AssignedTerminalResponse.model_validate(item) for item in booking.assigned_systems
        ],
        "duration": booking.duration,
        "extended_time": booking.extended_time,
        "total_hours": booking.total_hours,
        "status": booking.status,
        "permanently_cancelled": booking.permanently_cancelled,
        "booking_date": booking.booking_date,
        "start_time": booking.start_time,
        "session_start_time": _utc_or_none(booking.session_start_time),
        "session_end_time": _utc_or_none(booking.session_end_time),
        "otp_verified": booking.otp_verified_at is not None,
        "total_price": _rupees(booking.total_price_paise),
        "currency": booking.currency,
        "payment_status": booking.payment_status,
        "payment_method": booking.payment_method,
        "amount_paid": _rupees(booking.amount_paid_paise),
        "payment_reference": booking.payment_reference,
        "extension_payment_amount": _rupees(booking.extension_payment_amount_paise),
        "extension_payment_status": booking.extension_payment_status,
        "can_cancel": can_cancel(booking, now),
        "session": session,
        "created_at": _utc_or_none(booking.created_at),
    }


def booking_response(booking: Booking, now: datetime | None = None) -> BookingResponse:
    return BookingResponse.model_validate(booking_fields(booking, now))


def refund_response(refund: RefundRecord | None) -> RefundResponse | None:
    if refund is None:
        return None
    return RefundResponse(
        method=refund.method,
        amount=_rupees(refund.amount_paise),
        status=refund.status,
        message=refund.message,
        reference=refund.reference,
    )


def cafe_response(cafe: Cafe) -> CafeResponse:
    return CafeResponse.model_validate(cafe)
