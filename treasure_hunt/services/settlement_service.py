"""
Settlement Service - Atomic winner-slot claims for location games

Many devices race for a handful of prize slots on one shared game row. A claim
is a single read-modify-write transaction:

1. Re-read the game (with its version) and its winners
2. Already a winner -> ALREADY_WON, nothing credited again
3. Slots exhausted -> SLOTS_FULL
4. Daily cap re-checked inside the transaction -> INELIGIBLE
5. Append the winner, credit the balance, stamp the day's win, commit

The commit is conditional on the game version read in step 1 and on unique
(game, position) / (game, user) keys. Losing a race raises a conflict and the
whole transaction is replayed, so no more than winner_slots rows can exist.
"""
import logging
import math
from typing import Dict, Any, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_random
)

from treasure_hunt.clock import Clock, clock as default_clock
from treasure_hunt.config import settings
from treasure_hunt.db.models import Game, GameAttempt, GameWinner, User
from treasure_hunt.exceptions import (
    ClaimOutcome, GameNotFoundError, GameStateError,
    StoreUnavailableError, TransactionConflictError
)
from treasure_hunt.services.eligibility_service import eligibility_service
from treasure_hunt.services.proximity_service import proximity_service

logger = logging.getLogger(__name__)

CATEGORY = "physical"
CONFLICT_ERRORS = (StaleDataError, IntegrityError)


class SettlementService:
    """Service that converts an in-range claim into a recorded, paid win"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or default_clock

    def claim(
        self,
        db: Session,
        game_id: str,
        user_id: str,
        distance: float,
        device_id: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        username: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Attempt to claim a winner slot on a location game.

        Returns a result dict with an `outcome` (see ClaimOutcome) and a
        user-facing `message`. Raises GameNotFoundError, GameStateError,
        TransactionConflictError or StoreUnavailableError.
        """
        if distance is None or not math.isfinite(distance):
            distance = math.inf

        now = self.clock.now()
        today = self.clock.date_of(now)

        try:
            game = db.query(Game).filter(Game.id == game_id).first()
            if not game:
                raise GameNotFoundError(game_id)
            if game.kind != "location":
                raise GameStateError(f"Game {game_id} is not a location game")

            if game.status not in ("live", "completed"):
                return self._result(
                    ClaimOutcome.game_not_live, game, user_id, distance,
                    message=f"This game is not live (status: {game.status})."
                )

            radius = self._accuracy_radius(game)
            if not proximity_service.is_in_range(distance, radius):
                if settings.RECORD_OUT_OF_RANGE_ATTEMPTS:
                    self._record_attempt(
                        db, game_id, user_id, distance, latitude, longitude,
                        ClaimOutcome.out_of_range, now
                    )
                return self._result(
                    ClaimOutcome.out_of_range, game, user_id, distance,
                    message=self._out_of_range_message(distance, radius)
                )

            return self._settle_with_retry(
                db, game_id, user_id, distance, device_id,
                latitude, longitude, username, now, today
            )
        except DBAPIError as e:
            db.rollback()
            logger.error(f"Store unavailable while settling claim on game {game_id}: {e}")
            raise StoreUnavailableError("Could not reach the game store, claim rejected") from e

    def _settle_with_retry(self, db: Session, game_id: str, *args) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(settings.CLAIM_MAX_RETRIES),
            wait=wait_random(0, settings.CLAIM_RETRY_WAIT_SEC),
            retry=retry_if_exception_type(CONFLICT_ERRORS)
        )
        result = None
        try:
            for attempt in retrying:
                with attempt:
                    result = self._settle_once(db, game_id, *args)
        except RetryError as e:
            logger.error(
                f"Claim on game {game_id} still conflicting after "
                f"{settings.CLAIM_MAX_RETRIES} attempts"
            )
            raise TransactionConflictError(
                "The game is busy, please try again"
            ) from e.last_attempt.exception()
        return result

    def _settle_once(
        self,
        db: Session,
        game_id: str,
        user_id: str,
        distance: float,
        device_id: Optional[str],
        latitude: Optional[float],
        longitude: Optional[float],
        username: Optional[str],
        now,
        today: str
    ) -> Dict[str, Any]:
        """One read-modify-write pass; conflicts roll back and propagate"""
        try:
            game = db.query(Game).populate_existing().filter(Game.id == game_id).first()
            if not game:
                raise GameNotFoundError(game_id)

            winners = self._load_winners(db, game_id)

            existing = next((w for w in winners if w.user_id == user_id), None)
            if existing is not None:
                self._add_attempt(db, game_id, user_id, distance, latitude, longitude,
                                  ClaimOutcome.already_won, now)
                db.commit()
                return self._result(
                    ClaimOutcome.already_won, game, user_id, distance,
                    position=existing.position,
                    prize_amount=existing.prize_amount,
                    message=f"You already won this game (#{existing.position})."
                )

            if len(winners) >= game.winner_slots or game.status == "completed":
                self._add_attempt(db, game_id, user_id, distance, latitude, longitude,
                                  ClaimOutcome.slots_full, now)
                db.commit()
                return self._result(
                    ClaimOutcome.slots_full, game, user_id, distance,
                    message=f"All {game.winner_slots} prizes for this game have been claimed."
                )

            eligibility = eligibility_service.evaluate(db, user_id, CATEGORY, device_id, today)
            if not eligibility["eligible"]:
                self._add_attempt(db, game_id, user_id, distance, latitude, longitude,
                                  ClaimOutcome.ineligible, now)
                db.commit()
                return self._result(
                    ClaimOutcome.ineligible, game, user_id, distance,
                    reason=eligibility["reason"],
                    message=eligibility["message"]
                )

            user = self._get_or_create_user(db, user_id, username)
            position = len(winners) + 1
            prize_amount = game.prize_amount or 0.0

            db.add(GameWinner(
                game_id=game.id,
                user=user,
                username=user.username,
                position=position,
                completed_at=now,
                distance=distance,
                prize_amount=prize_amount
            ))
            self._add_attempt(db, game_id, user_id, distance, latitude, longitude,
                              ClaimOutcome.won, now)

            user.balance = (user.balance or 0.0) + prize_amount
            user.total_earnings = (user.total_earnings or 0.0) + prize_amount
            user.total_wins = (user.total_wins or 0) + 1
            eligibility_service.record_daily_win(
                db, user, CATEGORY, device_id, game, prize_amount, today, now
            )

            # Touching the row makes the version check part of the commit
            game.updated_at = now
            flag_modified(game, "updated_at")
            if position >= game.winner_slots:
                game.status = "completed"
                game.completed_at = now

            db.commit()
        except CONFLICT_ERRORS as e:
            db.rollback()
            logger.info(f"Write conflict settling claim on game {game_id}, retrying: {e}")
            raise
        except Exception:
            db.rollback()
            raise

        logger.info(f"User {user_id} won game {game_id} at position {position} (${prize_amount})")
        return self._result(
            ClaimOutcome.won, game, user_id, distance,
            position=position,
            prize_amount=prize_amount,
            message=f"You won! You finished #{position} and earned ${prize_amount:.2f}."
        )

    def _load_winners(self, db: Session, game_id: str):
        return db.query(GameWinner).populate_existing().filter(
            GameWinner.game_id == game_id
        ).order_by(GameWinner.position).all()

    def _get_or_create_user(self, db: Session, user_id: str, username: Optional[str]) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            user = User(
                id=user_id,
                username=username,
                balance=0.0,
                total_earnings=0.0,
                total_wins=0
            )
            db.add(user)
        elif username and not user.username:
            user.username = username
        return user

    def _add_attempt(self, db, game_id, user_id, distance, latitude, longitude, outcome, now):
        db.add(GameAttempt(
            game_id=game_id,
            user_id=user_id,
            attempted_at=now,
            distance=distance if math.isfinite(distance) else None,
            latitude=latitude,
            longitude=longitude,
            outcome=outcome.value
        ))

    def _record_attempt(self, db, game_id, user_id, distance, latitude, longitude, outcome, now):
        """Audit-only write outside any settlement; losing it is harmless"""
        try:
            self._add_attempt(db, game_id, user_id, distance, latitude, longitude, outcome, now)
            db.commit()
        except DBAPIError as e:
            db.rollback()
            logger.warning(f"Could not record attempt on game {game_id}: {e}")

    def _accuracy_radius(self, game: Game) -> float:
        return game.accuracy_radius or settings.DEFAULT_ACCURACY_RADIUS

    def _out_of_range_message(self, distance: float, radius: float) -> str:
        if not math.isfinite(distance):
            return "We couldn't determine your location. Enable location services and try again."
        return (
            f"You're {distance:.1f}m from the treasure "
            f"({proximity_service.meters_to_miles(distance)} miles). "
            f"Get within {radius:g}m to win."
        )

    def _result(
        self,
        outcome: ClaimOutcome,
        game: Game,
        user_id: str,
        distance: float,
        message: str,
        position: Optional[int] = None,
        prize_amount: Optional[float] = None,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        return {
            "outcome": outcome.value,
            "success": outcome in (ClaimOutcome.won, ClaimOutcome.already_won),
            "game_id": game.id,
            "user_id": user_id,
            "position": position,
            "prize_amount": prize_amount,
            "distance": round(distance, 2) if math.isfinite(distance) else None,
            "reason": reason,
            "message": message
        }


# Singleton instance
settlement_service = SettlementService()
