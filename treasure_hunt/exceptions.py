"""
Domain errors and claim outcomes
"""
from enum import Enum


class ClaimOutcome(str, Enum):
    won = "WON"
    already_won = "ALREADY_WON"
    out_of_range = "OUT_OF_RANGE"
    slots_full = "SLOTS_FULL"
    ineligible = "INELIGIBLE"
    game_not_live = "GAME_NOT_LIVE"


class IneligibleReason(str, Enum):
    user_already_won_today = "user_already_won_today"
    device_already_won_today = "device_already_won_today"


class TreasureHuntError(Exception):
    """Base class for service errors"""
    code = "ERROR"


class GameNotFoundError(TreasureHuntError):
    code = "GAME_NOT_FOUND"

    def __init__(self, game_id: str):
        super().__init__(f"Game not found: {game_id}")
        self.game_id = game_id


class GameStateError(TreasureHuntError):
    code = "INVALID_GAME_STATE"


class TransactionConflictError(TreasureHuntError):
    """Optimistic-lock conflicts persisted past the retry budget"""
    code = "TRANSACTION_CONFLICT"


class StoreUnavailableError(TreasureHuntError):
    code = "STORE_UNAVAILABLE"


class NotificationError(TreasureHuntError):
    code = "NOTIFICATION_FAILED"
