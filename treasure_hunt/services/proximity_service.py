"""
Proximity Service - Geolocation evaluation for location games

Turns a device position and a game target into:
- Great-circle distance (Haversine, meters)
- Initial compass bearing (cosmetic)
- Proximity percentage for the hot/cold meter
- The in-range decision, which is the only geometric gate for a win
"""
import math
from typing import Dict, Any, Optional

from treasure_hunt.config import settings
from treasure_hunt.services.odds_service import odds_service
from treasure_hunt.utils import round_half_up

EARTH_RADIUS_METERS = 6371e3
METERS_TO_MILES = 0.000621371


class ProximityService:
    """Pure geometry over well-formed coordinates; nothing here raises"""

    def __init__(self, fade_start_meters: Optional[float] = None):
        self.fade_start_meters = fade_start_meters or settings.FADE_START_METERS

    def calculate_distance(
        self,
        lat1: float,
        lon1: float,
        lat2: float,
        lon2: float
    ) -> float:
        """Haversine distance between two points in meters"""
        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        d_phi = math.radians(lat2 - lat1)
        d_lambda = math.radians(lon2 - lon1)

        a = (
            math.sin(d_phi / 2) ** 2
            + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
        )
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

        return EARTH_RADIUS_METERS * c

    def calculate_bearing(
        self,
        lat1: float,
        lon1: float,
        lat2: float,
        lon2: float
    ) -> float:
        """Initial bearing from point 1 towards point 2, degrees in [0, 360)"""
        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        d_lambda = math.radians(lon2 - lon1)

        y = math.sin(d_lambda) * math.cos(phi2)
        x = (
            math.cos(phi1) * math.sin(phi2)
            - math.sin(phi1) * math.cos(phi2) * math.cos(d_lambda)
        )
        bearing = math.degrees(math.atan2(y, x)) % 360.0
        # -0.0 % 360 and float rounding can both land on 360.0
        return 0.0 if bearing >= 360.0 else bearing

    def calculate_proximity(self, distance: float, accuracy_radius: float) -> int:
        """
        Proximity percentage, 100 at the target and 0 from the fade start on.

        Linear between the accuracy radius and the fade start. A radius at or
        beyond the fade start saturates: the ramp then runs from 0 meters.
        """
        fade_start = self.fade_start_meters
        inner = accuracy_radius if accuracy_radius < fade_start else 0.0

        if distance <= inner:
            return 100
        if distance >= fade_start:
            return 0

        proximity = 100.0 * (fade_start - distance) / (fade_start - inner)
        return max(0, min(100, round_half_up(proximity)))

    def is_in_range(self, distance: float, accuracy_radius: float) -> bool:
        return distance <= accuracy_radius

    def meters_to_miles(self, meters: float) -> float:
        return round(meters * METERS_TO_MILES, 1)

    def evaluate(
        self,
        latitude: float,
        longitude: float,
        target_latitude: float,
        target_longitude: float,
        accuracy_radius: float,
        winners_recorded: int = 0,
        total_slots: int = 1
    ) -> Dict[str, Any]:
        """Snapshot the client renders: distance, compass, meter and odds"""
        distance = self.calculate_distance(
            latitude, longitude, target_latitude, target_longitude
        )
        proximity = self.calculate_proximity(distance, accuracy_radius)

        return {
            "distance_meters": round(distance, 2),
            "distance_miles": self.meters_to_miles(distance),
            "bearing": round(
                self.calculate_bearing(latitude, longitude, target_latitude, target_longitude),
                1
            ) % 360.0,
            "proximity_percent": proximity,
            "odds_percent": odds_service.estimate_odds(
                proximity, winners_recorded, total_slots
            ),
            "in_range": self.is_in_range(distance, accuracy_radius),
            "accuracy_radius": accuracy_radius
        }


# Singleton instance
proximity_service = ProximityService()
