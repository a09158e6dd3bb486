"""
Services package - Business logic layer
"""
from treasure_hunt.services.proximity_service import proximity_service
from treasure_hunt.services.odds_service import odds_service
from treasure_hunt.services.eligibility_service import eligibility_service
from treasure_hunt.services.settlement_service import settlement_service
from treasure_hunt.services.leaderboard_service import leaderboard_service
from treasure_hunt.services.notification_service import notification_service
from treasure_hunt.services.game_service import game_service

__all__ = [
    "proximity_service",
    "odds_service",
    "eligibility_service",
    "settlement_service",
    "leaderboard_service",
    "notification_service",
    "game_service"
]
