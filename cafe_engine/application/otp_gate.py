import hmac
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from cafe_engine.application.booking_service import OTP_DIGITS, load_booking
from cafe_engine.domain.exceptions import (
    OTPConsumedError,
    OTPInvalidError,
    WrongStateError,
)
from cafe_engine.domain.session_clock import utc_now
from cafe_engine.domain.state_machine import BookingStatus
from cafe_engine.infrastructure.db.models import Booking
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)


def _is_otp_shaped(code: str) -> bool:
    return len(code) == OTP_DIGITS and code.isascii() and code.isdigit()


class OTPGate:
    """Single-use verification of the code a mobile customer shows at the counter."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)

    def verify(
        self,
        cafe_id: str,
        booking_id: str,
        code: str,
        now: datetime | None = None,
    ) -> bool:
        now = now or utc_now()
        booking = load_booking(self.booking_repository, cafe_id, booking_id)

        if booking.status != BookingStatus.BOOKED or booking.permanently_cancelled:
            raise WrongStateError(
                f"OTP cannot be verified for a booking in status {booking.status.value}."
            )
        if not booking.otp:
            raise OTPInvalidError("Invalid OTP")
        if booking.otp_verified_at is not None:
            raise OTPConsumedError("OTP has already been used.")
        code = (code or "").strip()
        if not _is_otp_shaped(code) or not hmac.compare_digest(
            booking.otp.encode(), code.encode()
        ):
            logger.info("OTP mismatch. booking_id=%s", booking.id)
            raise OTPInvalidError("Invalid OTP")

        consumed = self.booking_repository.compare_and_set(
            booking.id,
            BookingStatus.BOOKED,
            Booking.otp_verified_at.is_(None),
            otp_verified_at=now,
        )
        if not consumed:
            raise OTPConsumedError("OTP has already been used.")

        self.db.flush()
        self.db.refresh(booking)
        logger.info("OTP verified. booking_id=%s", booking.id)
        return True
