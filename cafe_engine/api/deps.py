import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from cafe_engine.application.expiry_sweeper import ExpirySweeper
from cafe_engine.infrastructure.db.models import Cafe
from cafe_engine.infrastructure.db.session import SessionLocal
from cafe_engine.infrastructure.refunds import get_refund_gateway as _configured_refund_gateway
from cafe_engine.infrastructure.repositories.cafe_repository import CafeRepository
from cafe_engine.infrastructure.security import TokenConfigurationError, decode_token

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)
sweeper = ExpirySweeper()


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_sweeper() -> ExpirySweeper:
    return sweeper


def get_refund_gateway():
    return _configured_refund_gateway()


def get_current_owner(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> str:
    if not creds:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        payload = decode_token(creds.credentials)
    except TokenConfigurationError as exc:
        logger.error("Token verification is not configured: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication is not configured.",
        ) from exc
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc

    owner_id = payload.get("sub")
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    return str(owner_id)


def get_owner_cafe(
    owner_id: str = Depends(get_current_owner),
    db: Session = Depends(get_db),
) -> Cafe:
    cafe = CafeRepository(db).get_for_owner(owner_id)
    if not cafe:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cafe not found",
        )
    return cafe


def ensure_same_cafe(cafe: Cafe, cafe_id: str) -> None:
    # Another owner's cafe is indistinguishable from a missing one.
    if cafe.id != cafe_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cafe not found",
        )
