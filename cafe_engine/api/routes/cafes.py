from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cafe_engine.api.deps import ensure_same_cafe, get_db, get_owner_cafe
from cafe_engine.api.errors import domain_errors
from cafe_engine.api.presenters import cafe_response
from cafe_engine.api.schemas.schemas import CafeOpenRequest, CafeResponse, MaintenanceRequest
from cafe_engine.application.catalog_service import CatalogService
from cafe_engine.infrastructure.db.models import Cafe

router = APIRouter(prefix="/api/cafes", tags=["cafes"])


@router.get("/my-cafe", response_model=CafeResponse)
def my_cafe(cafe: Cafe = Depends(get_owner_cafe)):
    return cafe_response(cafe)


@router.patch("/{cafe_id}/open", response_model=CafeResponse)
def set_cafe_open(
    cafe_id: str,
    request: CafeOpenRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    ensure_same_cafe(cafe, cafe_id)
    return cafe_response(CatalogService(db).set_cafe_open(cafe, request.is_open))


@router.patch(
    "/{cafe_id}/rooms/{room_name}/terminals/{terminal_id}/maintenance",
    response_model=CafeResponse,
)
def set_terminal_maintenance(
    cafe_id: str,
    room_name: str,
    terminal_id: str,
    request: MaintenanceRequest,
    cafe: Cafe = Depends(get_owner_cafe),
    db: Session = Depends(get_db),
):
    ensure_same_cafe(cafe, cafe_id)
    with domain_errors():
        cafe = CatalogService(db).set_terminal_maintenance(
            cafe,
            room_name,
            terminal_id,
            request.status,
        )
    return cafe_response(cafe)
