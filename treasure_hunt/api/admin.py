"""
Admin Router - Game lifecycle endpoints (API key protected)

Provides:
- POST /admin/games: Create a location or battle royale game
- POST /admin/games/{game_id}/status: Pause, resume or pull back a game
- POST /admin/games/{game_id}/launch: Go live and notify players
- POST /admin/games/{game_id}/declare-winners: End the game and pay out
"""
from datetime import datetime
from typing import Annotated, Dict, Literal, Optional, Union
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from treasure_hunt.dependencies import get_db, to_http_exception, verify_api_key
from treasure_hunt.exceptions import StoreUnavailableError, TreasureHuntError
from treasure_hunt.services.game_service import game_service

router = APIRouter(dependencies=[Depends(verify_api_key)])


# ============================================================
# REQUEST MODELS
# ============================================================

class GameCreateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    prize_amount: float = Field(0, ge=0)
    winner_slots: int = Field(3, ge=1, le=100)
    scheduled_time: Optional[datetime] = None


class LocationGameCreate(GameCreateBase):
    kind: Literal["location"]
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_radius: float = Field(10, gt=0, description="Winning radius in meters")


class VirtualGameCreate(GameCreateBase):
    kind: Literal["virtual"]
    virtual_type: str = Field("tap_count", max_length=50)
    score_order: Optional[Literal["asc", "desc"]] = Field(
        None, description="asc = lower score wins; defaults from virtual_type"
    )
    prize_distribution: Optional[Dict[int, float]] = Field(
        None, description="Finishing position -> percent of prize_amount"
    )

    @field_validator("prize_distribution")
    @classmethod
    def check_distribution(cls, value):
        if value is None:
            return value
        for position, percent in value.items():
            if position < 1:
                raise ValueError("positions start at 1")
            if not 0 <= percent <= 100:
                raise ValueError("percentages must be between 0 and 100")
        return value

    @model_validator(mode="after")
    def check_positions_within_slots(self):
        if self.prize_distribution and max(self.prize_distribution) > self.winner_slots:
            raise ValueError("prize_distribution has positions beyond winner_slots")
        return self


GameCreate = Annotated[
    Union[LocationGameCreate, VirtualGameCreate],
    Field(discriminator="kind")
]


class StatusChangeRequest(BaseModel):
    status: Literal["pending", "live", "inactive", "completed"]


# ============================================================
# ENDPOINTS
# ============================================================

@router.post("/games", status_code=201)
async def create_game(request: GameCreate, db: Session = Depends(get_db)):
    game = game_service.create_game(db, request.model_dump())
    return game_service.serialize_game(game, include_target=True)


@router.get("/games/{game_id}")
async def get_game(game_id: str, db: Session = Depends(get_db)):
    try:
        game = game_service.get_game(db, game_id)
    except TreasureHuntError as e:
        raise to_http_exception(e)
    return game_service.serialize_game(game, include_target=True)


@router.post("/games/{game_id}/status")
async def change_game_status(
    game_id: str,
    request: StatusChangeRequest,
    db: Session = Depends(get_db)
):
    try:
        game = game_service.change_status(db, game_id, request.status)
    except TreasureHuntError as e:
        raise to_http_exception(e)
    return {"game_id": game.id, "status": game.status}


@router.post("/games/{game_id}/launch")
async def launch_game(game_id: str, db: Session = Depends(get_db)):
    """Make the game live and push a notification to players in its city"""
    try:
        return game_service.launch_game(db, game_id)
    except TreasureHuntError as e:
        raise to_http_exception(e)


@router.post("/games/{game_id}/declare-winners")
async def declare_winners(game_id: str, db: Session = Depends(get_db)):
    """
    End the game and settle prizes.

    Battle royale: walks the leaderboard best-first, skipping players who
    already won a battle royale today, and pays positions 1..winner_slots
    using the game's prize distribution. A shortfall is reported when fewer
    eligible players than slots exist.

    Location: winners were settled when they claimed; the game is closed.
    """
    try:
        return game_service.declare_winners(db, game_id)
    except DBAPIError as e:
        raise to_http_exception(StoreUnavailableError(f"Could not reach the game store: {e}"))
    except TreasureHuntError as e:
        raise to_http_exception(e)
