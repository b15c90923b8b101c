"""Trading-session state in the exchange's local timezone."""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from src.config.settings import EngineSettings
from .calendar import is_business_day, previous_business_day
from .clock import Clock


class MarketHours:
    """
    Answers "is the exchange open right now" style questions.

    A session runs Mon-Fri (holidays excluded) from open_hour inclusive to
    close_hour exclusive, local time.
    """

    def __init__(self, settings: EngineSettings, clock: Optional[Clock] = None):
        self.tz = ZoneInfo(settings.timezone)
        self.open_hour = settings.market_open_hour
        self.close_hour = settings.market_close_hour
        self.holidays = frozenset(settings.holidays)
        self.clock = clock or Clock()

    def local_now(self) -> datetime:
        return self.clock.now(self.tz)

    def today(self) -> date:
        return self.local_now().date()

    def is_trading_day(self, d: date) -> bool:
        return is_business_day(d, self.holidays)

    def is_open(self, at: Optional[datetime] = None) -> bool:
        now = at.astimezone(self.tz) if at else self.local_now()
        if not self.is_trading_day(now.date()):
            return False
        return self.open_hour <= now.hour < self.close_hour

    def has_closed_today(self) -> bool:
        """True once today's session is over (False on non-trading days)."""
        now = self.local_now()
        return self.is_trading_day(now.date()) and now.hour >= self.close_hour

    def last_closed_session(self) -> date:
        """Most recent trading day whose session has already closed."""
        today = self.today()
        if self.has_closed_today():
            return today
        return previous_business_day(today, self.holidays)
