from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel


class HistoricalPrice(BaseModel):
    """One daily bar. `trade_date` is the exchange-local trading day."""

    trade_date: date
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: float
    volume: Optional[float] = None


class LiveQuote(BaseModel):
    ticker: str
    price: float
    timestamp: Optional[datetime] = None


class DividendEvent(BaseModel):
    """Cash amount per share that goes ex on ex_date."""

    ticker: str
    ex_date: date
    amount: float


class QuoteDividendSource(ABC):
    """Abstract base for quote and dividend providers."""

    @abstractmethod
    def fetch_historical_prices(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        interval: str = "1d",
    ) -> List[HistoricalPrice]:
        """
        Fetch daily bars with start_date <= date <= end_date, oldest first.

        Returns an empty list when the source has nothing for the range.
        """
        pass

    @abstractmethod
    def fetch_live_quote(self, ticker: str) -> Optional[LiveQuote]:
        """Fetch the latest traded price, or None if unavailable."""
        pass

    @abstractmethod
    def fetch_dividend_calendar(self, ticker: str) -> List[DividendEvent]:
        """Fetch every known dividend ex-date/amount pair for a ticker."""
        pass
