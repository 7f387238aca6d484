import os

from cafe_engine.infrastructure.db.models import Base
from cafe_engine.infrastructure.db.session import SessionLocal, engine
from cafe_engine.infrastructure.repositories.cafe_repository import CafeRepository

DEMO_CAFE_NAME = "Respawn Gaming Lounge"


def _terminals(prefix: str, terminal_type: str, count: int, price_per_hour: int) -> list[dict]:
    return [
        {
            "terminal_id": f"{prefix}{number:02d}",
            "type": terminal_type,
            "price_per_hour": price_per_hour,
        }
        for number in range(1, count + 1)
    ]


def seed_cafe(db, owner_id: str) -> bool:
    repository = CafeRepository(db)
    if repository.get_by_name(DEMO_CAFE_NAME):
        return False

    repository.create_cafe(
        owner_id=owner_id,
        name=DEMO_CAFE_NAME,
        rooms=[
            {
                "name": "Main Hall",
                "terminals": _terminals("PC", "PC", 10, 80),
            },
            {
                "name": "VIP",
                "terminals": _terminals("VIP", "PC", 4, 150),
            },
            {
                "name": "Console Room",
                "terminals": _terminals("PS", "PS5", 3, 120)
                + _terminals("XB", "Xbox", 2, 100),
            },
        ],
    )
    return True


def main() -> None:
    owner_id = os.getenv("DEMO_OWNER_ID", "demo-owner")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        created = seed_cafe(db, owner_id)
        db.commit()
        if created:
            print(f"Seed complete: {DEMO_CAFE_NAME} added for owner {owner_id}.")
        else:
            print(f"{DEMO_CAFE_NAME} already exists, nothing to do.")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
