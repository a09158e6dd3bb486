"""
Leaderboard Service - Battle royale scores and end-of-competition payouts

Players submit scores while a virtual game is live; one best score is kept
per player. When an administrator ends the competition the finalizer walks
the ranked leaderboard, skips anyone who already won a battle royale today
(by account or by device), and pays positions 1..winner_slots to the next
eligible players in order.
"""
import logging
from datetime import timedelta
from typing import Callable, Dict, Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from treasure_hunt.clock import Clock, clock as default_clock
from treasure_hunt.config import settings
from treasure_hunt.db.models import Game, GameWinner, LeaderboardEntry, User
from treasure_hunt.exceptions import GameNotFoundError, GameStateError
from treasure_hunt.services.eligibility_service import eligibility_service
from treasure_hunt.utils import round_half_up

logger = logging.getLogger(__name__)

CATEGORY = "battle_royale"
DEFAULT_PRIZE_DISTRIBUTION = {1: 100, 2: 60, 3: 30}
LOWER_IS_BETTER_TYPES = {"tap_count"}

Notifier = Callable[[List[Dict[str, Any]]], Any]


def default_score_order(virtual_type: Optional[str]) -> str:
    return "asc" if virtual_type in LOWER_IS_BETTER_TYPES else "desc"


class LeaderboardService:
    """Service for battle royale leaderboards and winner finalization"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or default_clock

    def _get_virtual_game(self, db: Session, game_id: str) -> Game:
        game = db.query(Game).filter(Game.id == game_id).first()
        if not game:
            raise GameNotFoundError(game_id)
        if game.kind != "virtual":
            raise GameStateError(f"Game {game_id} is not a battle royale game")
        return game

    def _is_better(self, game: Game, new_score: float, old_score: float) -> bool:
        if game.score_order == "asc":
            return new_score < old_score
        return new_score > old_score

    def rank_entries(self, game: Game, entries: List[LeaderboardEntry]) -> List[LeaderboardEntry]:
        """Best first; equal scores keep leaderboard (first submission) order"""
        ordered = sorted(entries, key=lambda e: e.id)
        return sorted(ordered, key=lambda e: e.score, reverse=game.score_order != "asc")

    def get_leaderboard(self, db: Session, game_id: str) -> Dict[str, Any]:
        game = self._get_virtual_game(db, game_id)
        ranked = self.rank_entries(game, list(game.leaderboard))
        return {
            "game_id": game.id,
            "score_order": game.score_order,
            "entries": [
                {
                    "rank": rank,
                    "user_id": entry.user_id,
                    "username": entry.username,
                    "score": entry.score
                }
                for rank, entry in enumerate(ranked, start=1)
            ]
        }

    def submit_score(
        self,
        db: Session,
        game_id: str,
        user_id: str,
        score: float,
        username: Optional[str] = None,
        device_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Record a score, keeping only the player's best one"""
        now = self.clock.now()

        for _ in range(2):
            game = self._get_virtual_game(db, game_id)
            if game.status != "live":
                raise GameStateError(f"Game {game_id} is not accepting scores (status: {game.status})")

            entry = db.query(LeaderboardEntry).filter(
                LeaderboardEntry.game_id == game_id,
                LeaderboardEntry.user_id == user_id
            ).first()

            improved = False
            if entry is None:
                entry = LeaderboardEntry(
                    game_id=game_id,
                    user_id=user_id,
                    username=username,
                    score=score,
                    device_id=device_id,
                    submitted_at=now,
                    updated_at=now
                )
                db.add(entry)
                improved = True
            elif self._is_better(game, score, entry.score):
                entry.score = score
                entry.device_id = device_id or entry.device_id
                entry.username = username or entry.username
                entry.updated_at = now
                improved = True

            try:
                db.commit()
                break
            except IntegrityError:
                # Another request created the entry first; compare against it
                db.rollback()
        else:
            raise GameStateError(f"Could not record score for user {user_id}")

        ranked = self.rank_entries(game, list(game.leaderboard))
        rank = next(i for i, e in enumerate(ranked, start=1) if e.user_id == user_id)

        return {
            "game_id": game_id,
            "user_id": user_id,
            "score": entry.score,
            "improved": improved,
            "rank": rank
        }

    def _prize_distribution(self, game: Game) -> Dict[int, float]:
        raw = game.prize_distribution or DEFAULT_PRIZE_DISTRIBUTION
        return {int(position): float(percent) for position, percent in raw.items()}

    def calculate_payout(self, prize_amount: float, percent: float) -> int:
        return round_half_up((prize_amount or 0) * percent / 100)

    def finalize(
        self,
        db: Session,
        game_id: str,
        notifier: Optional[Notifier] = None
    ) -> Dict[str, Any]:
        """
        Turn the leaderboard into paid winners. Runs once per game.

        Each candidate is settled in its own transaction; a failure is logged
        and the walk continues with the next player.
        """
        now = self.clock.now()
        today = self.clock.date_of(now)

        game = self._get_virtual_game(db, game_id)
        if game.status == "completed":
            raise GameStateError(f"Game {game_id} has already been finalized")
        if game.status not in ("live", "inactive"):
            raise GameStateError(f"Game {game_id} has not started (status: {game.status})")

        # Closing the game first makes a second concurrent finalize lose the
        # version check instead of paying out twice
        game.status = "completed"
        game.completed_at = now
        game.updated_at = now
        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise GameStateError(f"Game {game_id} is being finalized concurrently") from e

        ranked = self.rank_entries(game, list(game.leaderboard))
        distribution = self._prize_distribution(game)
        winner_slots = game.winner_slots
        claim_deadline = now + timedelta(minutes=settings.CLAIM_DEADLINE_MINUTES)

        winners: List[Dict[str, Any]] = []
        skipped: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []

        for leaderboard_position, entry in enumerate(ranked, start=1):
            if len(winners) >= winner_slots:
                break
            user_id = entry.user_id

            eligibility = eligibility_service.check_eligibility(
                db, entry.user_id, CATEGORY, entry.device_id, today
            )
            if not eligibility["eligible"]:
                logger.info(
                    f"Skipping {entry.username or entry.user_id} on game {game_id}: "
                    f"{eligibility['reason']}"
                )
                skipped.append({
                    "user_id": entry.user_id,
                    "username": entry.username,
                    "leaderboard_position": leaderboard_position,
                    "reason": eligibility["reason"]
                })
                continue

            position = len(winners) + 1
            try:
                winner = self._award(
                    db, game, entry, position, leaderboard_position,
                    distribution, claim_deadline, today, now
                )
            except Exception as e:
                db.rollback()
                logger.error(f"Error awarding {user_id} on game {game_id}: {e}")
                failed.append({
                    "user_id": user_id,
                    "leaderboard_position": leaderboard_position,
                    "error": str(e)
                })
                continue

            winners.append(winner)
            logger.info(
                f"Winner #{position} on game {game_id}: "
                f"{entry.username or entry.user_id} - ${winner['prize_amount']}"
            )
            self._notify_winner(db, notifier, game_id, winner)

        shortfall = max(0, winner_slots - len(winners))
        if shortfall:
            logger.warning(
                f"Only {len(winners)} eligible winners found out of {winner_slots} "
                f"slots on game {game_id}"
            )

        return {
            "game_id": game_id,
            "status": "completed",
            "winner_slots": winner_slots,
            "winners": winners,
            "skipped": skipped,
            "failed": failed,
            "shortfall": shortfall
        }

    def _award(
        self,
        db: Session,
        game: Game,
        entry: LeaderboardEntry,
        position: int,
        leaderboard_position: int,
        distribution: Dict[int, float],
        claim_deadline,
        today: str,
        now
    ) -> Dict[str, Any]:
        percent = distribution.get(position, 0.0)
        payout = self.calculate_payout(game.prize_amount, percent)

        user = db.query(User).filter(User.id == entry.user_id).first()
        if user is None:
            user = User(id=entry.user_id, username=entry.username,
                        balance=0.0, total_earnings=0.0, total_wins=0)
            db.add(user)

        user.balance = (user.balance or 0.0) + payout
        user.total_earnings = (user.total_earnings or 0.0) + payout
        user.total_wins = (user.total_wins or 0) + 1
        user.pending_winner_card = {
            "game_id": game.id,
            "game_name": game.name,
            "position": position,
            "prize_amount": payout,
            "game_type": "virtual",
            "won_money": payout > 0,
            "city": game.city,
            "created_at": now.isoformat()
        }
        eligibility_service.record_daily_win(
            db, user, CATEGORY, entry.device_id, game, payout, today, now
        )

        db.add(GameWinner(
            game_id=game.id,
            user=user,
            username=entry.username,
            position=position,
            completed_at=now,
            score=entry.score,
            leaderboard_position=leaderboard_position,
            prize_amount=payout,
            prize_percent=percent,
            claim_deadline=claim_deadline,
            claimed=False
        ))
        push_token = user.push_token
        db.commit()

        return {
            "user_id": entry.user_id,
            "username": entry.username,
            "position": position,
            "score": entry.score,
            "prize_amount": payout,
            "prize_percent": percent,
            "leaderboard_position": leaderboard_position,
            "claim_deadline": claim_deadline.isoformat(),
            "push_token": push_token
        }

    def _notify_winner(
        self,
        db: Session,
        notifier: Optional[Notifier],
        game_id: str,
        winner: Dict[str, Any]
    ) -> None:
        push_token = winner.pop("push_token", None)
        if notifier is None or not push_token:
            return

        game_name = db.query(Game.name).filter(Game.id == game_id).scalar()
        message = {
            "to": push_token,
            "sound": "default",
            "title": "You Won!",
            "body": (
                f"Congratulations! You finished #{winner['position']} in \"{game_name}\" "
                f"and won ${winner['prize_amount']}! Open the app to claim your prize."
            ),
            "data": {
                "type": "battle_royale_win",
                "gameId": game_id,
                "position": winner["position"],
                "prizeAmount": winner["prize_amount"]
            }
        }
        try:
            notifier([message])
        except Exception as e:
            logger.error(f"Error sending notification to {winner['user_id']}: {e}")


# Singleton instance
leaderboard_service = LeaderboardService()
