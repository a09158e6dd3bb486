"""
Odds Service - Display-only "chance of winning" heuristic

Never used to gate a claim; the settlement engine only looks at distance.
"""
from treasure_hunt.utils import round_half_up


class OddsService:
    """Maps proximity and remaining slots to a 0-100 odds figure"""

    CLOSE_THRESHOLD = 70
    VERY_CLOSE_THRESHOLD = 90

    def base_odds(self, proximity: float) -> float:
        # Boost odds significantly when very close
        if proximity > self.VERY_CLOSE_THRESHOLD:
            return 95 + (proximity - self.VERY_CLOSE_THRESHOLD)
        if proximity > self.CLOSE_THRESHOLD:
            return 70 + ((proximity - self.CLOSE_THRESHOLD) / 20) * 25
        return proximity

    def estimate_odds(
        self,
        proximity: float,
        winners_recorded: int,
        total_slots: int
    ) -> int:
        slots_remaining = total_slots - winners_recorded
        if slots_remaining <= 0 or total_slots <= 0:
            return 0

        slot_multiplier = slots_remaining / total_slots
        base = min(100.0, self.base_odds(proximity))
        return round_half_up(base * slot_multiplier)


# Singleton instance
odds_service = OddsService()
