"""
FastAPI dependencies for the Treasure Hunt service
"""
from typing import Generator, Optional
from fastapi import HTTPException, Header, status
from sqlalchemy.orm import Session
from treasure_hunt.db.database import SessionLocal
from treasure_hunt.config import settings
from treasure_hunt.exceptions import (
    GameNotFoundError, GameStateError, StoreUnavailableError,
    TransactionConflictError, TreasureHuntError
)


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for admin endpoints"""
    if not x_api_key or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
    return x_api_key


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Authenticated user id, as issued by the identity provider"""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return x_user_id


async def get_device_id(x_device_id: Optional[str] = Header(None)) -> Optional[str]:
    """Best-effort installation id sent by the client"""
    return x_device_id or None


def to_http_exception(error: TreasureHuntError) -> HTTPException:
    """Map a service error onto an HTTP status"""
    if isinstance(error, GameNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (GameStateError, TransactionConflictError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, StoreUnavailableError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(
        status_code=code,
        detail={"code": error.code, "message": str(error)}
    )
