import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["REFUND_PROVIDER"] = "manual"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import sessionmaker

from cafe_engine.api.deps import get_db, get_sweeper
from cafe_engine.application.booking_service import BookingService
from cafe_engine.application.expiry_sweeper import ExpirySweeper
from cafe_engine.infrastructure.db.models import Base
from cafe_engine.infrastructure.db.session import build_engine
from cafe_engine.infrastructure.repositories.cafe_repository import CafeRepository
from cafe_engine.main import app

OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


def _terminals(prefix, terminal_type, count, price_per_hour):
    return [
        {
            "terminal_id": f"{prefix}{number:02d}",
            "type": terminal_type,
            "price_per_hour": price_per_hour,
        }
        for number in range(1, count + 1)
    ]


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'cafe.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def cafe(db):
    # VIP: PC01-PC03 (PC, 100/h); Console: PS01-PS02 (PS5, 150/h)
    cafe = CafeRepository(db).create_cafe(
        owner_id=OWNER_ID,
        name="Test Cafe",
        rooms=[
            {"name": "VIP", "terminals": _terminals("PC", "PC", 3, 100)},
            {"name": "Console", "terminals": _terminals("PS", "PS5", 2, 150)},
        ],
    )
    db.commit()
    return cafe


@pytest.fixture
def other_cafe(db):
    cafe = CafeRepository(db).create_cafe(
        owner_id=OTHER_OWNER_ID,
        name="Other Cafe",
        rooms=[{"name": "Main", "terminals": _terminals("OT", "PC", 2, 90)}],
    )
    db.commit()
    return cafe


@pytest.fixture
def make_walk_in(db, cafe):
    def _make(systems=None, duration=1.0, **kwargs):
        booking = BookingService(db).create_walk_in_booking(
            cafe=cafe,
            walk_in_customer_name=kwargs.pop("name", "Asha"),
            phone_number=kwargs.pop("phone", "9876543210"),
            systems_booked=systems
            or [{"room_type": "VIP", "terminal_type": "PC", "number_of_terminals": 1}],
            duration=duration,
            **kwargs,
        )
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_mobile(db, cafe):
    def _make(systems=None, duration=1.0):
        booking = BookingService(db).create_mobile_booking(
            cafe=cafe,
            customer_id="customer-1",
            systems_booked=systems
            or [{"room_type": "VIP", "terminal_type": "PC", "number_of_terminals": 1}],
            duration=duration,
        )
        db.commit()
        return booking

    return _make


@pytest.fixture
def sweeper(session_factory):
    return ExpirySweeper(session_factory=session_factory, interval_seconds=3600)


@pytest.fixture
def client(session_factory, sweeper):
    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sweeper] = lambda: sweeper
    yield TestClient(app)
    app.dependency_overrides.clear()


def _token(owner_id):
    return jwt.encode({"sub": owner_id}, "test-secret", algorithm="HS256")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {_token(OWNER_ID)}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {_token(OTHER_OWNER_ID)}"}
