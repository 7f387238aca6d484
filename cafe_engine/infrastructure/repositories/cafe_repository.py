# cafe_engine/infrastructure/repositories/cafe_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import select

from cafe_engine.infrastructure.db.models import Cafe, Room, Terminal
from cafe_engine.domain.state_machine import TerminalStatus


class CafeRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, cafe_id: str) -> Cafe | None:
        return self.db.execute(
            select(Cafe).where(Cafe.id == cafe_id)
        ).scalar_one_or_none()

    def get_for_owner(self, owner_id: str) -> Cafe | None:
        stmt = (
            select(Cafe)
            .where(Cafe.owner_id == owner_id)
            .order_by(Cafe.created_at)
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_name(self, name: str) -> Cafe | None:
        return self.db.execute(
            select(Cafe).where(Cafe.name == name)
        ).scalar_one_or_none()

    def create_cafe(
        self,
        owner_id: str,
        name: str,
        rooms: list[dict],
    ) -> Cafe:
        """
        rooms: [{"name": "VIP", "terminals": [{"terminal_id": "PC01",
        "type": "PC", "price_per_hour": 100}, ...]}, ...]
        """

        cafe = Cafe(owner_id=owner_id, name=name, is_open=True)
        self.db.add(cafe)
        self.db.flush()

        for room_position, room_def in enumerate(rooms):
            room = Room(cafe_id=cafe.id, name=room_def["name"], position=room_position)
            for terminal_position, terminal_def in enumerate(room_def["terminals"]):
                room.terminals.append(
                    Terminal(
                        cafe_id=cafe.id,
                        terminal_id=terminal_def["terminal_id"],
                        type=terminal_def["type"],
                        price_per_hour=terminal_def["price_per_hour"],
                        position=terminal_position,
                        status=terminal_def.get("status", TerminalStatus.AVAILABLE),
                    )
                )
            cafe.rooms.append(room)

        self.db.flush()
        return cafe
