import logging
from collections import Counter
from datetime import datetime

from sqlalchemy.orm import Session

from cafe_engine.domain.exceptions import (
    BookingValidationError,
    NotFoundError,
    TerminalConflictError,
    WrongStateError,
)
from cafe_engine.domain.session_clock import remaining, utc_now
from cafe_engine.domain.state_machine import TerminalStateMachine, TerminalStatus
from cafe_engine.infrastructure.db.models import Cafe
from cafe_engine.infrastructure.repositories.booking_repository import BookingRepository
from cafe_engine.infrastructure.repositories.terminal_repository import TerminalRepository

logger = logging.getLogger(__name__)


class CatalogService:
    """Read side of the cafe catalog plus the owner's maintenance and open/close toggles."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.terminal_repository = TerminalRepository(db)

    def availability(self, cafe: Cafe, now: datetime | None = None) -> dict:
        now = now or utc_now()
        self.db.expire_all()

        rooms = []
        for room in cafe.rooms:
            counts: dict[str, Counter] = {}
            prices: dict[str, int] = {}
            for terminal in room.terminals:
                counts.setdefault(terminal.type, Counter())[terminal.status] += 1
                prices.setdefault(terminal.type, terminal.price_per_hour)
            rooms.append(
                {
                    "name": room.name,
                    "types": [
                        {
                            "type": terminal_type,
                            "price_per_hour": prices[terminal_type],
                            "total": sum(counter.values()),
                            "available": counter[TerminalStatus.AVAILABLE],
                            "active": counter[TerminalStatus.ACTIVE],
                            "under_maintenance": counter[TerminalStatus.UNDER_MAINTENANCE],
                        }
                        for terminal_type, counter in counts.items()
                    ],
                }
            )

        sessions = []
        for booking in self.booking_repository.list_active(cafe.id):
            clock = remaining(booking.session_start_time, booking.total_hours, now)
            sessions.append(
                {
                    "booking_id": booking.id,
                    "terminal_ids": [item.terminal_id for item in booking.assigned_systems],
                    "expired": clock.expired,
                    "remaining_ms": clock.remaining_ms,
                    "remaining_minutes": clock.remaining_minutes,
                    "percentage": clock.percentage,
                    "end_time": clock.end_time,
                }
            )

        return {
            "cafe_id": cafe.id,
            "is_open": cafe.is_open,
            "rooms": rooms,
            "active_sessions": sessions,
        }

    def set_terminal_maintenance(
        self,
        cafe: Cafe,
        room_name: str,
        terminal_id: str,
        status: TerminalStatus,
    ) -> Cafe:
        if status not in (TerminalStatus.AVAILABLE, TerminalStatus.UNDER_MAINTENANCE):
            raise BookingValidationError(
                "Status must be Available or Under Maintenance"
            )

        terminal = self.terminal_repository.get_in_room(cafe.id, room_name, terminal_id)
        if not terminal:
            raise NotFoundError(f"Terminal not found in {room_name}")

        if terminal.status == status:
            return cafe
        if terminal.status == TerminalStatus.ACTIVE:
            raise WrongStateError("Terminal is in use by an active session.")
        TerminalStateMachine.validate_transition(terminal.status, status)

        changed = self.terminal_repository.compare_and_set_status(
            terminal,
            terminal.status,
            status,
        )
        if not changed:
            self.db.rollback()
            raise TerminalConflictError(
                "Terminal was updated by another action, please refresh."
            )

        self.db.flush()
        self.db.expire(terminal)
        self.db.refresh(cafe)
        logger.info(
            "Terminal status changed. cafe_id=%s terminal_id=%s status=%s",
            cafe.id,
            terminal_id,
            status.value,
        )
        return cafe

    def set_cafe_open(self, cafe: Cafe, is_open: bool) -> Cafe:
        cafe.is_open = is_open
        self.db.flush()
        self.db.refresh(cafe)
        logger.info("Cafe open state changed. cafe_id=%s is_open=%s", cafe.id, is_open)
        return cafe
