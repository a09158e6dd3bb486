"""
Game Service - Game lifecycle for administrators

pending/scheduled -> live on launch, live <-> inactive (pause/resume),
live -> pending (pulled back), live/inactive -> completed when slots fill or when the
administrator declares winners. Battle royales complete only through declare_winners.
"""
import logging
import uuid
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from treasure_hunt.clock import Clock, clock as default_clock
from treasure_hunt.config import settings
from treasure_hunt.db.models import Game, User
from treasure_hunt.exceptions import GameNotFoundError, GameStateError
from treasure_hunt.services.leaderboard_service import (
    DEFAULT_PRIZE_DISTRIBUTION, Notifier, default_score_order, leaderboard_service
)
from treasure_hunt.services.notification_service import chunk, notification_service

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "pending": {"live"},
    "scheduled": {"live"},
    "inactive": {"live", "completed"},
    "live": {"pending", "inactive", "completed"},
    "completed": set(),
}


class GameService:
    """Service for creating games and moving them through their lifecycle"""

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or default_clock

    def get_game(self, db: Session, game_id: str) -> Game:
        game = db.query(Game).filter(Game.id == game_id).first()
        if not game:
            raise GameNotFoundError(game_id)
        return game

    def list_games(self, db: Session, status: Optional[str] = None) -> List[Game]:
        query = db.query(Game)
        if status:
            query = query.filter(Game.status == status)
        return query.order_by(Game.created_at.desc()).all()

    def create_game(self, db: Session, data: Dict[str, Any]) -> Game:
        """Create a game from validated payload data (location or virtual)"""
        now = self.clock.now()
        kind = data["kind"]

        game = Game(
            id=str(uuid.uuid4()),
            name=data["name"].strip(),
            description=(data.get("description") or "").strip() or None,
            city=(data.get("city") or "").strip() or None,
            kind=kind,
            status="scheduled" if data.get("scheduled_time") else "pending",
            prize_amount=data.get("prize_amount") or 0.0,
            winner_slots=data.get("winner_slots") or settings.DEFAULT_WINNER_SLOTS,
            scheduled_time=data.get("scheduled_time"),
            updated_at=now
        )

        if kind == "location":
            game.target_latitude = data["latitude"]
            game.target_longitude = data["longitude"]
            game.accuracy_radius = data.get("accuracy_radius") or settings.DEFAULT_ACCURACY_RADIUS
        else:
            game.virtual_type = data.get("virtual_type")
            game.score_order = data.get("score_order") or default_score_order(game.virtual_type)
            distribution = data.get("prize_distribution") or DEFAULT_PRIZE_DISTRIBUTION
            game.prize_distribution = {str(k): v for k, v in distribution.items()}

        db.add(game)
        db.commit()
        db.refresh(game)

        logger.info(f"Created {kind} game {game.id} '{game.name}' with status {game.status}")
        return game

    def change_status(self, db: Session, game_id: str, new_status: str) -> Game:
        game = self.get_game(db, game_id)
        current = game.status

        if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
            raise GameStateError(f"Cannot move game {game_id} from {current} to {new_status}")
        if new_status == "completed" and game.kind == "virtual":
            # Only the finalizer may close a battle royale, otherwise nobody gets paid
            raise GameStateError(
                f"Game {game_id} is a battle royale, declare winners to complete it"
            )

        now = self.clock.now()
        game.status = new_status
        game.updated_at = now
        if new_status == "live" and game.launched_at is None:
            game.launched_at = now
        if new_status == "completed":
            game.completed_at = now

        try:
            db.commit()
        except StaleDataError as e:
            db.rollback()
            raise GameStateError(f"Game {game_id} changed concurrently, reload and retry") from e

        logger.info(f"Game {game_id} status {current} -> {new_status}")
        return game

    def launch_game(
        self,
        db: Session,
        game_id: str,
        notifier: Optional[Notifier] = None
    ) -> Dict[str, Any]:
        """Make a game live and tell players in its city"""
        game = self.change_status(db, game_id, "live")
        notifier = notifier or notification_service.dispatch

        query = db.query(User.push_token).filter(User.push_token.isnot(None))
        if game.city:
            query = query.filter(User.city == game.city)
        tokens = [token for (token,) in query.all() if token]

        messages = notification_service.build_game_live_messages(game, tokens)
        for batch in chunk(messages, settings.EXPO_PUSH_BATCH_SIZE):
            try:
                notifier(batch)
            except Exception as e:
                logger.error(f"Error sending launch notifications for game {game_id}: {e}")

        logger.info(f"Launched game {game_id}, notified {len(tokens)} players")
        return {"game_id": game.id, "status": game.status, "notified": len(tokens)}

    def declare_winners(
        self,
        db: Session,
        game_id: str,
        notifier: Optional[Notifier] = None
    ) -> Dict[str, Any]:
        """End a game: leaderboard payout for virtual games, close location games"""
        game = self.get_game(db, game_id)

        if game.kind == "virtual":
            return leaderboard_service.finalize(
                db, game_id, notifier=notifier or notification_service.dispatch
            )

        # Location winners are settled at claim time; declaring just closes the game
        if game.status != "completed":
            self.change_status(db, game_id, "completed")
        winners = [self.serialize_winner(w) for w in game.winners]
        shortfall = max(0, game.winner_slots - len(winners))
        if shortfall:
            logger.warning(
                f"Location game {game_id} closed with {len(winners)} of "
                f"{game.winner_slots} slots won"
            )
        return {
            "game_id": game.id,
            "status": game.status,
            "winner_slots": game.winner_slots,
            "winners": winners,
            "skipped": [],
            "failed": [],
            "shortfall": shortfall
        }

    def serialize_winner(self, winner) -> Dict[str, Any]:
        return {
            "user_id": winner.user_id,
            "username": winner.username,
            "position": winner.position,
            "completed_at": winner.completed_at.isoformat() if winner.completed_at else None,
            "distance": winner.distance,
            "score": winner.score,
            "prize_amount": winner.prize_amount,
            "prize_percent": winner.prize_percent,
            "claimed": winner.claimed
        }

    def serialize_game(self, game: Game, include_target: bool = False) -> Dict[str, Any]:
        data = {
            "id": game.id,
            "name": game.name,
            "description": game.description,
            "city": game.city,
            "kind": game.kind,
            "status": game.status,
            "prize_amount": game.prize_amount,
            "winner_slots": game.winner_slots,
            "scheduled_time": game.scheduled_time.isoformat() if game.scheduled_time else None,
            "launched_at": game.launched_at.isoformat() if game.launched_at else None,
            "completed_at": game.completed_at.isoformat() if game.completed_at else None,
            "winners": [self.serialize_winner(w) for w in game.winners]
        }
        if game.kind == "location":
            data["accuracy_radius"] = game.accuracy_radius
            # Players only ever see distance, never the treasure itself
            if include_target:
                data["latitude"] = game.target_latitude
                data["longitude"] = game.target_longitude
        else:
            data.update({
                "virtual_type": game.virtual_type,
                "score_order": game.score_order,
                "prize_distribution": game.prize_distribution
            })
        return data


# Singleton instance
game_service = GameService()
