"""
Time provider used for every daily-cap comparison.

Eligibility checks and win recording must agree on what "today" is, so the
date is always derived from one Clock and read once per logical operation.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from treasure_hunt.config import settings


class Clock:
    """Wall clock with a configurable day boundary"""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = ZoneInfo(tz_name or settings.WIN_DAY_TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> str:
        """Current calendar date as YYYY-MM-DD in the win-day timezone"""
        return self.date_of(self.now())

    def date_of(self, instant: datetime) -> str:
        return instant.astimezone(self.tz).date().isoformat()


class FixedClock(Clock):
    """Clock pinned to a given instant, for tests and replays"""

    def __init__(self, instant: datetime, tz_name: Optional[str] = None):
        super().__init__(tz_name)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, **delta) -> None:
        self.instant = self.instant + timedelta(**delta)


clock = Clock()
