"""
Eligibility Service - Daily win cap per user and per device

A user may record one win per category per calendar day:
- physical: location games
- battle_royale: virtual leaderboard competitions

The device check catches several accounts sharing one phone. The device id
is best-effort (it can reset on reinstall), so it is an abuse signal only.
"""
import logging
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from treasure_hunt.db.models import DailyWin, Game, User, WIN_CATEGORIES
from treasure_hunt.exceptions import IneligibleReason

logger = logging.getLogger(__name__)

INELIGIBLE_MESSAGES = {
    IneligibleReason.user_already_won_today: (
        "You've already won today! Play for fun, but prizes go to other players."
    ),
    IneligibleReason.device_already_won_today: (
        "This device already has a winner today. Try again tomorrow!"
    ),
}


def device_key(device_id: Optional[str], user_id: str) -> str:
    """Marker key for a device; falls back to the user when the client sent none"""
    return device_id or f"unknown:{user_id}"


class EligibilityService:
    """Service answering "may this user record a win of this category today?" """

    def _date_field(self, category: str) -> str:
        if category not in WIN_CATEGORIES:
            raise ValueError(f"Unknown win category: {category}")
        return f"last_{category}_win_date"

    def evaluate(
        self,
        db: Session,
        user_id: str,
        category: str,
        device_id: Optional[str],
        today: str
    ) -> Dict[str, Any]:
        """
        Decide eligibility against the current store state.

        Store errors propagate; callers inside a settlement transaction rely
        on that to fail closed.
        """
        date_field = self._date_field(category)

        user = db.query(User).filter(User.id == user_id).first()
        if user is not None and getattr(user, date_field) == today:
            return self._ineligible(IneligibleReason.user_already_won_today, device_id)

        if device_id:
            marker = db.query(DailyWin).filter(
                DailyWin.date == today,
                DailyWin.device_id == device_id,
                DailyWin.category == category
            ).first()
            if marker is not None and marker.user_id != user_id:
                return self._ineligible(IneligibleReason.device_already_won_today, device_id)

        return {"eligible": True, "device_id": device_id}

    def check_eligibility(
        self,
        db: Session,
        user_id: str,
        category: str,
        device_id: Optional[str],
        today: str
    ) -> Dict[str, Any]:
        """
        Pre-flight eligibility check.

        Fails open when the store cannot be reached; the settlement
        transaction re-checks before granting anything.
        """
        try:
            return self.evaluate(db, user_id, category, device_id, today)
        except DBAPIError as e:
            logger.warning(f"Eligibility check failed open for user {user_id}: {e}")
            db.rollback()
            return {"eligible": True, "device_id": device_id, "error": str(e)}

    def _ineligible(self, reason: IneligibleReason, device_id: Optional[str]) -> Dict[str, Any]:
        return {
            "eligible": False,
            "reason": reason.value,
            "message": INELIGIBLE_MESSAGES[reason],
            "device_id": device_id
        }

    def record_daily_win(
        self,
        db: Session,
        user: User,
        category: str,
        device_id: Optional[str],
        game: Game,
        prize_amount: float,
        today: str,
        now: datetime
    ) -> DailyWin:
        """
        Stamp the user's win date and add the device marker.

        Runs inside the caller's transaction; nothing is committed here.
        """
        setattr(user, self._date_field(category), today)
        user.last_win_game_id = game.id
        user.last_win_game_name = game.name
        user.last_win_amount = prize_amount
        user.last_win_at = now
        user.last_win_device_id = device_id

        marker = DailyWin(
            date=today,
            device_id=device_key(device_id, user.id),
            category=category,
            user_id=user.id,
            game_id=game.id,
            game_name=game.name,
            prize_amount=prize_amount,
            won_at=now
        )
        db.add(marker)
        return marker

    def get_user_win_stats(self, db: Session, user_id: str) -> Dict[str, Any]:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            return {
                "user_id": user_id,
                "total_wins": 0,
                "total_earnings": 0.0,
                "balance": 0.0,
                "last_win_date": None,
                "last_win_game_name": None
            }

        win_dates = [
            d for d in (user.last_physical_win_date, user.last_battle_royale_win_date) if d
        ]
        return {
            "user_id": user_id,
            "total_wins": user.total_wins or 0,
            "total_earnings": user.total_earnings or 0.0,
            "balance": user.balance or 0.0,
            "last_win_date": max(win_dates) if win_dates else None,
            "last_physical_win_date": user.last_physical_win_date,
            "last_battle_royale_win_date": user.last_battle_royale_win_date,
            "last_win_game_name": user.last_win_game_name
        }


# Singleton instance
eligibility_service = EligibilityService()
