"""
Users Router - Win eligibility and stats for the signed-in player
"""
from typing import Optional, Literal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from treasure_hunt.clock import clock
from treasure_hunt.dependencies import get_current_user_id, get_db, get_device_id
from treasure_hunt.services.eligibility_service import eligibility_service

router = APIRouter()


@router.get("/me/eligibility")
async def get_eligibility(
    category: Literal["physical", "battle_royale"] = Query("physical"),
    user_id: str = Depends(get_current_user_id),
    device_id: Optional[str] = Depends(get_device_id),
    db: Session = Depends(get_db)
):
    """
    Can this player still win a prize of this category today?

    Categories are independent: a physical win does not block a battle
    royale win on the same day. Fails open if the store is unreachable.
    """
    result = eligibility_service.check_eligibility(
        db=db,
        user_id=user_id,
        category=category,
        device_id=device_id,
        today=clock.today()
    )
    result["category"] = category
    return result


@router.get("/me/stats")
async def get_win_stats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return eligibility_service.get_user_win_stats(db, user_id)
