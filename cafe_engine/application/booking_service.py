import logging
import secrets
from collections import Counter
from datetime import date

from sqlalchemy.orm import Session

from cafe_engine.domain.exceptions import (
    BookingConflictError,
    BookingValidationError,
    NotFoundError,
    WrongStateError,
)
from cafe_engine.domain.policies import validate_hours
from cafe_engine.domain.pricing import session_price_paise, to_paise
from cafe_engine.domain.state_machine import BookingSource, PaymentStatus
from cafe_engine.infrastructure.db.models import Booking, Cafe
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)

OTP_DIGITS = 6


def load_booking(repository: BookingRepository, cafe_id: str, booking_id: str) -> Booking:
    # Bookings of other cafes are reported as missing.
    booking = repository.get_by_id(booking_id, cafe_id=cafe_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def terminal_type_price(cafe: Cafe, room_type: str, terminal_type: str) -> int | None:
    """Hourly rate quoted for a terminal type in a room: its highest terminal rate."""
    prices = [
        terminal.price_per_hour
        for room in cafe.rooms
        if room.name == room_type
        for terminal in room.terminals
        if terminal.type == terminal_type
    ]
    return max(prices, default=None)


def generate_otp() -> str:
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


class BookingService:
    """Application service for creating bookings and recording payment outcomes."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)

    def get_booking(self, cafe_id: str, booking_id: str) -> Booking:
        return load_booking(self.booking_repository, cafe_id, booking_id)

    def list_bookings(self, cafe_id: str) -> list[Booking]:
        return self.booking_repository.list_for_cafe(cafe_id)

    def create_walk_in_booking(
        self,
        cafe: Cafe,
        walk_in_customer_name: str,
        phone_number: str,
        systems_booked: list[dict],
        duration: float,
        booking_date: date | None = None,
        start_time: str | None = None,
        payment_method: str | None = None,
        amount_paid: float | None = None,
    ) -> Booking:
        name = (walk_in_customer_name or "").strip()
        phone = (phone_number or "").strip()
        if not name:
            raise BookingValidationError("Customer name is required")
        if len(phone) != 10 or not (phone.isascii() and phone.isdigit()):
            raise BookingValidationError("Phone number must be exactly 10 digits")

        total_price_paise = self._price_requirements(cafe, systems_booked, duration)

        fields = {}
        if payment_method:
            # Paid at the counter when the booking is taken.
            fields.update(
                payment_status=PaymentStatus.COMPLETED,
                payment_method=payment_method,
                amount_paid_paise=(
                    to_paise(amount_paid) if amount_paid is not None else total_price_paise
                ),
            )

        booking = self.booking_repository.create_booking(
            cafe_id=cafe.id,
            requirements=systems_booked,
            source=BookingSource.WALK_IN,
            walk_in_customer_name=name,
            phone_number=phone,
            duration=duration,
            booking_date=booking_date,
            start_time=start_time,
            total_price_paise=total_price_paise,
            **fields,
        )
        self.db.flush()
        logger.info(
            "Walk-in booking created. booking_id=%s cafe_id=%s terminals=%s duration=%s",
            booking.id,
            cafe.id,
            sum(item["number_of_terminals"] for item in systems_booked),
            duration,
        )
        return booking

    def create_mobile_booking(
        self,
        cafe: Cafe,
        customer_id: str,
        systems_booked: list[dict],
        duration: float,
        booking_date: date | None = None,
        start_time: str | None = None,
        phone_number: str | None = None,
    ) -> Booking:
        if not customer_id:
            raise BookingValidationError("Customer is required for mobile bookings")

        total_price_paise = self._price_requirements(cafe, systems_booked, duration)
        booking = self.booking_repository.create_booking(
            cafe_id=cafe.id,
            requirements=systems_booked,
            source=BookingSource.MOBILE,
            customer_id=customer_id,
            phone_number=phone_number,
            duration=duration,
            booking_date=booking_date,
            start_time=start_time,
            total_price_paise=total_price_paise,
            otp=generate_otp(),
            payment_status=PaymentStatus.PENDING,
        )
        self.db.flush()
        logger.info(
            "Mobile booking created. booking_id=%s cafe_id=%s customer_id=%s",
            booking.id,
            cafe.id,
            customer_id,
        )
        return booking

    def record_payment(
        self,
        cafe_id: str,
        booking_id: str,
        result: str,
        method: str | None = None,
        amount: float | None = None,
        reference: str | None = None,
    ) -> Booking:
        booking = self.get_booking(cafe_id, booking_id)
        if booking.permanently_cancelled:
            raise WrongStateError("Booking has been cancelled.")
        if booking.payment_status not in (PaymentStatus.NOT_SET, PaymentStatus.PENDING):
            raise WrongStateError(
                f"Payment already recorded as {booking.payment_status.value}."
            )

        if result == "completed":
            values = {
                "payment_status": PaymentStatus.COMPLETED,
                "payment_method": method or booking.payment_method,
                "amount_paid_paise": (
                    to_paise(amount) if amount is not None else booking.total_price_paise
                ),
                "payment_reference": reference,
            }
        elif result == "failed":
            values = {
                "payment_status": PaymentStatus.FAILED,
                "payment_method": method or booking.payment_method,
                "payment_reference": reference,
            }
        else:
            raise BookingValidationError("Invalid payment result")

        changed = self.booking_repository.compare_and_set(
            booking.id,
            booking.status,
            Booking.payment_status == booking.payment_status,
            **values,
        )
        if not changed:
            self.db.rollback()
            raise BookingConflictError("Booking was updated by another action, please refresh.")

        self.db.flush()
        self.db.refresh(booking)
        logger.info(
            "Payment recorded. booking_id=%s result=%s method=%s",
            booking.id,
            result,
            booking.payment_method,
        )
        return booking

    def _price_requirements(
        self,
        cafe: Cafe,
        systems_booked: list[dict],
        duration: float,
    ) -> int:
        if not cafe.is_open:
            raise WrongStateError("Cafe is currently closed for bookings.")
        validate_hours(duration, "duration")
        if not systems_booked:
            raise BookingValidationError("At least one system must be booked")

        rooms = {room.name: room for room in cafe.rooms}
        requested: Counter = Counter()
        for item in systems_booked:
            room = rooms.get(item["room_type"])
            if room is None:
                raise BookingValidationError(f"Room {item['room_type']} does not exist")
            if not any(t.type == item["terminal_type"] for t in room.terminals):
                raise BookingValidationError(
                    f"{item['terminal_type']} is not offered in {room.name}"
                )
            if item["number_of_terminals"] < 1:
                raise BookingValidationError("Number of systems must be at least 1")
            requested[(room.name, item["terminal_type"])] += item["number_of_terminals"]

        lines: list[tuple[int, int]] = []
        for (room_name, terminal_type), count in requested.items():
            offered = [t for t in rooms[room_name].terminals if t.type == terminal_type]
            if count > len(offered):
                raise BookingValidationError(
                    f"{room_name} only has {len(offered)} {terminal_type}(s)"
                )
            lines.append((max(t.price_per_hour for t in offered), count))

        return session_price_paise(lines, duration)
