import logging
from datetime import datetime

from sqlalchemy.orm import Session

from cafe_engine.application.booking_service import load_booking, terminal_type_price
from cafe_engine.domain.exceptions import (
    BookingConflictError,
    BookingValidationError,
    WrongStateError,
)
from cafe_engine.domain.policies import (
    EXTENDABLE_STATUSES,
    validate_hours,
    validate_total_hours,
)
from cafe_engine.domain.pricing import session_price_paise, to_paise
from cafe_engine.domain.session_clock import remaining, session_end_time, utc_now
from cafe_engine.domain.state_machine import BookingStatus, PaymentStatus
from cafe_engine.infrastructure.db.models import Booking
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository
from cafe_engine.infrastructure.repositories.cafe_repository import CafeRepository

logger = logging.getLogger(__name__)


class ExtensionService:

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.cafe_repository = CafeRepository(db)

    def extend(
        self,
        cafe_id: str,
        booking_id: str,
        hours_to_add: float,
        terminal_ids: list[str] | None = None,
        payment_amount: float | None = None,
        now: datetime | None = None,
    ) -> Booking:
        """
        Adds hours to the whole booking. terminal_ids only has to name
        terminals of the booking; every assigned terminal gets the same time.
        """
        now = now or utc_now()
        validate_hours(hours_to_add, "hoursToAdd")
        booking = load_booking(self.booking_repository, cafe_id, booking_id)

        if booking.status not in EXTENDABLE_STATUSES or booking.permanently_cancelled:
            raise WrongStateError(
                f"Cannot extend booking in status {booking.status.value}."
            )
        if booking.status == BookingStatus.ACTIVE and remaining(
            booking.session_start_time, booking.total_hours, now
        ).expired:
            raise WrongStateError("Session has already expired.")
        validate_total_hours(booking.total_hours + hours_to_add, "hoursToAdd")

        if terminal_ids is not None:
            assigned = {item.terminal_id for item in booking.assigned_systems}
            if not terminal_ids or not set(terminal_ids) <= assigned:
                raise BookingValidationError(
                    "Selected terminals are not part of this booking"
                )

        charge_paise = (
            to_paise(payment_amount)
            if payment_amount is not None
            else self._extension_charge(cafe_id, booking, hours_to_add)
        )
        if booking.extension_payment_status == PaymentStatus.PENDING:
            amount_due = booking.extension_payment_amount_paise + charge_paise
        else:
            amount_due = charge_paise

        new_extended_time = booking.extended_time + hours_to_add
        values = {
            "extended_time": new_extended_time,
            "extension_payment_amount_paise": amount_due,
            "extension_payment_status": PaymentStatus.PENDING,
        }
        if booking.status == BookingStatus.ACTIVE:
            values["session_end_time"] = session_end_time(
                booking.session_start_time,
                booking.duration + new_extended_time,
            )

        extended = self.booking_repository.compare_and_set(
            booking.id,
            booking.status,
            Booking.extended_time == booking.extended_time,
            Booking.extension_payment_status == booking.extension_payment_status,
            **values,
        )
        if not extended:
            self.db.rollback()
            raise BookingConflictError(
                "Booking was updated by another action, please refresh."
            )

        self.db.flush()
        self.db.refresh(booking)
        logger.info(
            "Booking extended. booking_id=%s hours_added=%s extended_time=%s charge_paise=%s",
            booking.id,
            hours_to_add,
            booking.extended_time,
            charge_paise,
        )
        return booking

    def confirm_extension_payment(
        self,
        cafe_id: str,
        booking_id: str,
        result: str,
    ) -> Booking:
        booking = load_booking(self.booking_repository, cafe_id, booking_id)
        if result == "completed":
            new_status = PaymentStatus.COMPLETED
        elif result == "failed":
            new_status = PaymentStatus.FAILED
        else:
            raise BookingValidationError("Invalid payment result")

        if booking.extension_payment_status != PaymentStatus.PENDING:
            raise WrongStateError("No extension payment is pending.")

        changed = self.booking_repository.compare_and_set(
            booking.id,
            booking.status,
            Booking.extension_payment_status == PaymentStatus.PENDING,
            extension_payment_status=new_status,
        )
        if not changed:
            self.db.rollback()
            raise WrongStateError("No extension payment is pending.")

        self.db.flush()
        self.db.refresh(booking)
        logger.info(
            "Extension payment recorded. booking_id=%s result=%s",
            booking.id,
            result,
        )
        return booking

    def _extension_charge(self, cafe_id: str, booking: Booking, hours: float) -> int:
        if booking.assigned_systems:
            lines = [(item.price_per_hour, 1) for item in booking.assigned_systems]
        else:
            cafe = self.cafe_repository.get_by_id(cafe_id)
            lines = [
                (
                    terminal_type_price(cafe, item.room_type, item.terminal_type) or 0,
                    item.number_of_terminals,
                )
                for item in booking.systems_booked
            ]
        return session_price_paise(lines, hours)
