from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cafe_engine.api.deps import ensure_same_cafe, get_db, get_owner_cafe, get_sweeper
from cafe_engine.api.errors import domain_errors
from cafe_engine.api.presenters import booking_response
from cafe_engine.api.schemas.schemas import (
    AvailabilityResponse,
    BookingResponse,
    EndSessionRequest,
    ExtendSessionRequest,
    RoomAssignmentIn,
    StartSessionRequest,
)
from cafe_engine.application.assignment_service import AssignmentService
from cafe_engine.application.catalog_service import CatalogService
from cafe_engine.application.expiry_sweeper import ExpirySweeper
from cafe_engine.application.extension_service import ExtensionService
from cafe_engine.application.session_service import SessionService
from cafe_engine.domain.assignment import RoomAssignment
from cafe_engine.infrastructure.db.models import Cafe

router = APIRouter(prefix="/api/systems", tags=["systems"])


def to_room_assignments(assignments: list[RoomAssignmentIn]) -> list[RoomAssignment]:
    return [
        RoomAssignment(room_type=item.room_type, terminal_ids=tuple(item.terminal_ids))
        for item in assignments
    ]


@router.post("/start-session", response_model=BookingResponse)
def start_session(
    request: StartSessionRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = AssignmentService(db).assign(
            cafe.id,
            request.booking_id,
            to_room_assignments(request.assignments),
        )
    return booking_response(booking)


@router.post("/end-session", response_model=BookingResponse)
def end_session(
    request: EndSessionRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = SessionService(db).end_session(cafe.id, request.booking_id)
    return booking_response(booking)


@router.patch("/extend", response_model=BookingResponse)
def extend_session(
    request: ExtendSessionRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    with domain_errors():
        booking = ExtensionService(db).extend(
            cafe.id,
            request.booking_id,
            request.hours_to_add,
            terminal_ids=request.terminal_ids,
            payment_amount=request.extension_payment_amount,
        )
    return booking_response(booking)


@router.get("/availability/{cafe_id}", response_model=AvailabilityResponse)
def availability(
    cafe_id: str,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
    sweeper: ExpirySweeper = Depends(get_sweeper),
):
    ensure_same_cafe(cafe, cafe_id)
    sweeper.sweep(cafe_id=cafe.id)
    return AvailabilityResponse.model_validate(CatalogService(db).availability(cafe))
