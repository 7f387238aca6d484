import logging

from sqlalchemy.orm import Session

from cafe_engine.application.booking_service import load_booking
from cafe_engine.domain.exceptions import BookingConflictError, WrongStateError
from cafe_engine.domain.state_machine import BookingStateMachine, BookingStatus
from cafe_engine.infrastructure.db.models import Booking
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository
from cafe_engine.infrastructure.repositories.terminal_repository import TerminalRepository

logger = logging.getLogger(__name__)


def complete_session(
    db: Session,
    booking_id: str,
    observed_extended_time: float | None = None,
) -> int | None:
    """
    Active -> Completed and release of the booking's terminals.
    Returns the number of terminals released, or None when another caller
    finished (or extended) the booking first.
    """
    criteria = []
    if observed_extended_time is not None:
        criteria.append(Booking.extended_time == observed_extended_time)

    completed = BookingRepository(db).compare_and_set(
        booking_id,
        BookingStatus.ACTIVE,
        *criteria,
        status=BookingStatus.COMPLETED,
    )
    if not completed:
        return None

    released = TerminalRepository(db).release_for_booking(booking_id)
    logger.info(
        "Session completed. booking_id=%s released_terminals=%s",
        booking_id,
        released,
    )
    return released


class SessionService:

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)

    def end_session(self, cafe_id: str, booking_id: str) -> Booking:
        booking = load_booking(self.booking_repository, cafe_id, booking_id)
        if booking.status != BookingStatus.ACTIVE:
            raise WrongStateError(
                f"Session is not active (status {booking.status.value})."
            )
        BookingStateMachine.validate_transition(booking.status, BookingStatus.COMPLETED)

        if complete_session(self.db, booking.id) is None:
            self.db.rollback()
            raise BookingConflictError(
                "Session was already ended by another action, please refresh."
            )

        self.db.flush()
        self.db.refresh(booking)
        return booking
