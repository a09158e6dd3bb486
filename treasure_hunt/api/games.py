"""
Games Router - Player-facing game endpoints

Provides:
- GET /games: List games
- GET /games/{game_id}: Game details and winners
- GET /games/{game_id}/proximity: Distance, hot/cold meter and odds
- POST /games/{game_id}/claim: Claim a winner slot on a location game
- POST /games/{game_id}/scores: Submit a battle royale score
- GET /games/{game_id}/leaderboard: Ranked battle royale leaderboard
"""
from typing import Optional, Literal
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from treasure_hunt.dependencies import (
    get_current_user_id, get_db, get_device_id, to_http_exception
)
from treasure_hunt.exceptions import GameStateError, StoreUnavailableError, TreasureHuntError
from treasure_hunt.services.game_service import game_service
from treasure_hunt.services.leaderboard_service import leaderboard_service
from treasure_hunt.services.proximity_service import proximity_service
from treasure_hunt.services.settlement_service import settlement_service

router = APIRouter()

GameStatus = Literal["pending", "scheduled", "live", "completed", "inactive"]


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================

class ClaimRequest(BaseModel):
    """Request to claim a prize at the player's current position"""
    latitude: float = Field(..., ge=-90, le=90, description="Player's GPS latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Player's GPS longitude")
    username: Optional[str] = Field(None, max_length=100)

    class Config:
        json_schema_extra = {
            "example": {
                "latitude": 40.7128,
                "longitude": -74.0060,
                "username": "treasure_seeker"
            }
        }


class ClaimResponse(BaseModel):
    outcome: str  # WON, ALREADY_WON, OUT_OF_RANGE, SLOTS_FULL, INELIGIBLE, GAME_NOT_LIVE
    success: bool
    game_id: str
    user_id: str
    position: Optional[int] = None
    prize_amount: Optional[float] = None
    distance: Optional[float] = None
    reason: Optional[str] = None
    message: str


class ScoreRequest(BaseModel):
    score: float = Field(..., ge=0)
    username: Optional[str] = Field(None, max_length=100)


class ScoreResponse(BaseModel):
    game_id: str
    user_id: str
    score: float
    improved: bool
    rank: int


# ============================================================
# ENDPOINTS
# ============================================================

@router.get("")
async def list_games(
    status: Optional[GameStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db)
):
    games = game_service.list_games(db, status)
    return {"games": [game_service.serialize_game(g) for g in games]}


@router.get("/{game_id}")
async def get_game(game_id: str, db: Session = Depends(get_db)):
    try:
        game = game_service.get_game(db, game_id)
    except TreasureHuntError as e:
        raise to_http_exception(e)
    return game_service.serialize_game(game)


@router.get("/{game_id}/proximity")
async def get_proximity(
    game_id: str,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    db: Session = Depends(get_db)
):
    """
    Hot/cold snapshot for the player's current position.

    The odds figure is advisory; only the claim endpoint decides a win.
    """
    try:
        game = game_service.get_game(db, game_id)
        if game.kind != "location":
            raise GameStateError(f"Game {game_id} is not a location game")
    except TreasureHuntError as e:
        raise to_http_exception(e)

    snapshot = proximity_service.evaluate(
        latitude,
        longitude,
        game.target_latitude,
        game.target_longitude,
        game.accuracy_radius,
        winners_recorded=len(game.winners),
        total_slots=game.winner_slots
    )
    snapshot["game_id"] = game.id
    return snapshot


@router.post("/{game_id}/claim", response_model=ClaimResponse)
async def claim_prize(
    game_id: str,
    request: ClaimRequest,
    user_id: str = Depends(get_current_user_id),
    device_id: Optional[str] = Depends(get_device_id),
    db: Session = Depends(get_db)
):
    """
    Claim one of the game's winner slots.

    Rules:
    - Distance to the treasure must be within the accuracy radius
    - One slot per player per game; retrying after a win is safe
    - One physical win per player (and per device) per day
    - Never more winners than slots, however many players claim at once
    """
    try:
        game = game_service.get_game(db, game_id)
        if game.kind != "location":
            raise GameStateError(f"Game {game_id} is not a location game")

        distance = proximity_service.calculate_distance(
            request.latitude,
            request.longitude,
            game.target_latitude,
            game.target_longitude
        )
        return settlement_service.claim(
            db=db,
            game_id=game_id,
            user_id=user_id,
            distance=distance,
            device_id=device_id,
            latitude=request.latitude,
            longitude=request.longitude,
            username=request.username
        )
    except DBAPIError as e:
        raise to_http_exception(StoreUnavailableError(f"Could not reach the game store: {e}"))
    except TreasureHuntError as e:
        raise to_http_exception(e)


@router.post("/{game_id}/scores", response_model=ScoreResponse)
async def submit_score(
    game_id: str,
    request: ScoreRequest,
    user_id: str = Depends(get_current_user_id),
    device_id: Optional[str] = Depends(get_device_id),
    db: Session = Depends(get_db)
):
    """Submit a battle royale score; only the player's best score is kept"""
    try:
        return leaderboard_service.submit_score(
            db=db,
            game_id=game_id,
            user_id=user_id,
            score=request.score,
            username=request.username,
            device_id=device_id
        )
    except TreasureHuntError as e:
        raise to_http_exception(e)


@router.get("/{game_id}/leaderboard")
async def get_leaderboard(game_id: str, db: Session = Depends(get_db)):
    try:
        return leaderboard_service.get_leaderboard(db, game_id)
    except TreasureHuntError as e:
        raise to_http_exception(e)
