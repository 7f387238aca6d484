# cafe_engine/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from cafe_engine.infrastructure.db.models import (
    AssignedTerminal,
    Booking,
    BookingRequirement,
    RefundRecord,
)
from cafe_engine.domain.state_machine import BookingStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
        cafe_id: str | None = None,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        if cafe_id is not None:
            stmt = stmt.where(Booking.cafe_id == cafe_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_cafe(self, cafe_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.cafe_id == cafe_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_active(self, cafe_id: str | None = None) -> list[Booking]:
        stmt = select(Booking).where(Booking.status == BookingStatus.ACTIVE)
        if cafe_id is not None:
            stmt = stmt.where(Booking.cafe_id == cafe_id)
        return list(self.db.execute(stmt.order_by(Booking.session_start_time)).scalars().all())

    def create_booking(
        self,
        cafe_id: str,
        requirements: list[dict],
        **fields,
    ) -> Booking:

        booking = Booking(
            cafe_id=cafe_id,
            status=BookingStatus.BOOKED,
            permanently_cancelled=False,
            extended_time=0.0,
            **fields,
        )
        booking.systems_booked = [
            BookingRequirement(position=position, **requirement)
            for position, requirement in enumerate(requirements)
        ]
        self.db.add(booking)
        return booking

    def compare_and_set(
        self,
        booking_id: str,
        expected_status: BookingStatus,
        *criteria,
        **values,
    ) -> bool:
        """
        UPDATE ... WHERE status = expected AND NOT permanently_cancelled.
        Returns True only if this call changed the row.
        """

        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status == expected_status)
            .where(Booking.permanently_cancelled.is_(False))
        )
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        result = self.db.execute(stmt)
        return result.rowcount == 1

    def add_assigned_terminals(
        self,
        booking: Booking,
        terminals: list[dict],
    ) -> None:

        for terminal in terminals:
            self.db.add(AssignedTerminal(booking_id=booking.id, **terminal))

    def add_refund(
        self,
        booking_id: str,
        method: str,
        amount_paise: int,
        status: str,
        message: str | None,
        reference: str | None,
    ) -> RefundRecord:

        record = RefundRecord(
            booking_id=booking_id,
            method=method,
            amount_paise=amount_paise,
            status=status,
            message=message,
            reference=reference,
        )
        self.db.add(record)
        return record
