# cafe_engine/infrastructure/repositories/terminal_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select, update

from cafe_engine.infrastructure.db.models import Room, Terminal
from cafe_engine.domain.state_machine import TerminalStatus


class TerminalRepository:

    def __init__(self, db: Session):
        self.db = db

    def find_in_room(
        self,
        cafe_id: str,
        room_name: str,
        terminal_ids: list[str],
    ) -> list[Terminal]:

        stmt = (
            select(Terminal)
            .join(Room, Terminal.room_id == Room.id)
            .where(Terminal.cafe_id == cafe_id)
            .where(Room.name == room_name)
            .where(Terminal.terminal_id.in_(terminal_ids))
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_in_room(
        self,
        cafe_id: str,
        room_name: str,
        terminal_id: str,
    ) -> Terminal | None:

        found = self.find_in_room(cafe_id, room_name, [terminal_id])
        return found[0] if found else None

    def claim(
        self,
        cafe_id: str,
        terminal_ids: list[str],
        booking_id: str,
    ) -> int:
        """
        Available -> Active for every named terminal in one statement.
        Rows that are no longer Available are left untouched, so the
        returned count is smaller than len(terminal_ids) on a lost race.
        """

        stmt = (
            update(Terminal)
            .where(Terminal.cafe_id == cafe_id)
            .where(Terminal.terminal_id.in_(sorted(terminal_ids)))
            .where(Terminal.status == TerminalStatus.AVAILABLE)
            .where(Terminal.active_booking_id.is_(None))
            .values(
                status=TerminalStatus.ACTIVE,
                active_booking_id=booking_id,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def release_for_booking(self, booking_id: str) -> int:
        # Keyed on the booking reference so a terminal already handed to
        # another booking is never released.
        stmt = (
            update(Terminal)
            .where(Terminal.active_booking_id == booking_id)
            .where(Terminal.status == TerminalStatus.ACTIVE)
            .values(
                status=TerminalStatus.AVAILABLE,
                active_booking_id=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount

    def compare_and_set_status(
        self,
        terminal: Terminal,
        expected_status: TerminalStatus,
        new_status: TerminalStatus,
    ) -> bool:

        stmt = (
            update(Terminal)
            .where(Terminal.id == terminal.id)
            .where(Terminal.status == expected_status)
            .where(Terminal.active_booking_id.is_(None))
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1
