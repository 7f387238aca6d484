import logging
from datetime import datetime

from sqlalchemy.orm import Session

from cafe_engine.application.booking_service import load_booking
from cafe_engine.application.otp_gate import OTPGate
from cafe_engine.domain.assignment import RoomAssignment, plan_assignment
from cafe_engine.domain.exceptions import (
    BookingConflictError,
    OTPRequiredError,
    TerminalConflictError,
    WrongStateError,
)
from cafe_engine.domain.session_clock import session_end_time, utc_now
from cafe_engine.domain.state_machine import (
    BookingSource,
    BookingStateMachine,
    BookingStatus,
)
from cafe_engine.infrastructure.db.models import Booking
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository
from cafe_engine.infrastructure.repositories.terminal_repository import TerminalRepository

logger = logging.getLogger(__name__)


class AssignmentService:
    """Binds a Booked booking to concrete terminals and starts its session."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.terminal_repository = TerminalRepository(db)

    def assign(
        self,
        cafe_id: str,
        booking_id: str,
        assignments: list[RoomAssignment],
        now: datetime | None = None,
    ) -> Booking:
        now = now or utc_now()
        booking = load_booking(self.booking_repository, cafe_id, booking_id)

        if booking.permanently_cancelled:
            raise WrongStateError("Booking has been cancelled.")
        BookingStateMachine.validate_transition(booking.status, BookingStatus.ACTIVE)
        if booking.source == BookingSource.MOBILE and booking.otp_verified_at is None:
            raise OTPRequiredError("OTP must be verified before the session can start.")

        terminals = []
        terminal_types = {}
        for assignment in assignments:
            if not assignment.terminal_ids:
                continue
            found = self.terminal_repository.find_in_room(
                cafe_id,
                assignment.room_type,
                list(assignment.terminal_ids),
            )
            for terminal in found:
                terminal_types[(assignment.room_type, terminal.terminal_id)] = terminal.type
                terminals.append(terminal)

        plan = plan_assignment(booking.systems_booked, assignments, terminal_types)
        prices = {terminal.terminal_id: terminal.price_per_hour for terminal in terminals}
        terminal_ids = [item.terminal_id for item in plan]

        claimed = self.terminal_repository.claim(cafe_id, terminal_ids, booking.id)
        if claimed != len(terminal_ids):
            self.db.rollback()
            logger.warning(
                "Terminal claim lost. booking_id=%s requested=%s claimed=%s",
                booking_id,
                len(terminal_ids),
                claimed,
            )
            raise TerminalConflictError(
                "Selected terminal is no longer available, please re-select."
            )

        started = self.booking_repository.compare_and_set(
            booking.id,
            BookingStatus.BOOKED,
            Booking.extended_time == booking.extended_time,
            status=BookingStatus.ACTIVE,
            session_start_time=now,
            session_end_time=session_end_time(now, booking.total_hours),
        )
        if not started:
            self.db.rollback()
            logger.warning("Booking changed during assignment. booking_id=%s", booking_id)
            raise BookingConflictError(
                "Booking was updated by another action, please refresh."
            )

        self.booking_repository.add_assigned_terminals(
            booking,
            [
                {
                    "terminal_id": item.terminal_id,
                    "room_type": item.room_type,
                    "terminal_type": item.terminal_type,
                    "price_per_hour": prices[item.terminal_id],
                }
                for item in plan
            ],
        )
        self.db.flush()
        for terminal in terminals:
            self.db.expire(terminal)
        self.db.refresh(booking)

        logger.info(
            "Session started. booking_id=%s terminals=%s end=%s",
            booking.id,
            ",".join(terminal_ids),
            booking.session_end_time,
        )
        return booking

    def start_mobile_session(
        self,
        cafe_id: str,
        booking_id: str,
        code: str,
        assignments: list[RoomAssignment],
        now: datetime | None = None,
    ) -> Booking:
        """
        Verifies the customer's OTP and assigns terminals in one unit of work.
        If the assignment fails the caller's rollback also undoes the OTP
        consumption, so the customer can retry with the same code.
        """
        now = now or utc_now()
        OTPGate(self.db).verify(cafe_id, booking_id, code, now=now)
        self.db.expire_all()
        return self.assign(cafe_id, booking_id, assignments, now=now)
