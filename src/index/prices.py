"""Close prices, live quotes and dividends as seen by the index engine."""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from src.cache.ttl_cache import TTLCache
from src.config.settings import EngineSettings
from src.db.repositories.price_repo import PriceRepository
from src.market.calendar import previous_business_day
from src.providers.base import DividendEvent, QuoteDividendSource

logger = logging.getLogger(__name__)

# Calendar days fetched around a requested date so the previous close
# survives long weekends and unlisted holidays.
_LOOKBACK_DAYS = 10


class PriceService:
    """
    Read-through access to daily closes backed by the price_cache table.

    Closes are served from the cache unless `skip_cache` is set, in which
    case the source is asked again and the cache refreshed. Dividend
    calendars live in the injected TTL cache.
    """

    def __init__(
        self,
        session: Session,
        source: QuoteDividendSource,
        cache: TTLCache,
        settings: Optional[EngineSettings] = None,
    ):
        self.session = session
        self.source = source
        self.cache = cache
        self.settings = settings or EngineSettings()
        self.price_repo = PriceRepository(session)
        self.holidays = frozenset(self.settings.holidays)

    def _refresh(self, ticker: str, start: date, end: date) -> int:
        bars = self.source.fetch_historical_prices(ticker, start, end, "1d")
        if not bars:
            logger.warning(f"No prices from source for {ticker} in {start}..{end}")
            return 0
        return self.price_repo.upsert_bars(ticker, bars)

    def get_close(self, ticker: str, d: date, skip_cache: bool = False) -> Optional[float]:
        """Official close on d, or None if the ticker did not trade that day."""
        if not skip_cache:
            cached = self.price_repo.get_price(ticker, d)
            if cached:
                return float(cached.close_price)

        self._refresh(ticker, d - timedelta(days=_LOOKBACK_DAYS), d)
        row = self.price_repo.get_price(ticker, d)
        return float(row.close_price) if row else None

    def get_previous_close(
        self, ticker: str, d: date, skip_cache: bool = False
    ) -> Optional[Tuple[date, float]]:
        """Last close strictly before d, as (date, price)."""
        expected = previous_business_day(d, self.holidays)
        if not skip_cache:
            cached = self.price_repo.get_last_before(ticker, d)
            # A cached row older than the previous session means a gap in the
            # cache, not a missing session.
            if cached and cached.price_date >= expected:
                return cached.price_date, float(cached.close_price)

        self._refresh(ticker, d - timedelta(days=_LOOKBACK_DAYS), d - timedelta(days=1))
        row = self.price_repo.get_last_before(ticker, d)
        if not row:
            return None
        return row.price_date, float(row.close_price)

    def get_cached_close_on_or_before(self, ticker: str, d: date) -> Optional[float]:
        row = self.price_repo.get_last_on_or_before(ticker, d)
        return float(row.close_price) if row else None

    def get_live_price(self, ticker: str) -> Optional[float]:
        quote = self.source.fetch_live_quote(ticker)
        if quote is None or quote.price <= 0:
            return None
        return quote.price

    def get_dividend_calendar(self, ticker: str, refresh: bool = False) -> List[DividendEvent]:
        key = f"dividends:{ticker}"
        if not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        events = self.source.fetch_dividend_calendar(ticker)
        self.cache.set(key, events, self.settings.dividend_calendar_ttl_seconds)
        return events

    def get_dividend_on(
        self,
        ticker: str,
        d: date,
        prev_session: Optional[date] = None,
        refresh: bool = False,
    ) -> float:
        """
        Total cash per share going ex on session d (0.0 if none).

        Ex-dates after the previous session and up to d count, so an ex-date
        on a weekend or an unlisted holiday lands on the next session.
        prev_session defaults to the last cached close before d.
        """
        if prev_session is None:
            row = self.price_repo.get_last_before(ticker, d)
            prev_session = row.price_date if row else previous_business_day(d, self.holidays)
        return sum(
            e.amount
            for e in self.get_dividend_calendar(ticker, refresh)
            if prev_session < e.ex_date <= d
        )

    def get_dividends_between(
        self, ticker: str, start: date, end: date, refresh: bool = False
    ) -> List[DividendEvent]:
        return [
            e
            for e in self.get_dividend_calendar(ticker, refresh)
            if start <= e.ex_date <= end
        ]

    def invalidate_dividends(self) -> int:
        """Forget every cached dividend calendar."""
        return self.cache.invalidate_prefix("dividends:")

    def dividends_for_tickers(
        self, tickers: List[str], d: date, refresh: bool = False
    ) -> Dict[str, float]:
        out = {}
        for ticker in tickers:
            amount = self.get_dividend_on(ticker, d, refresh=refresh)
            if amount > 0:
                out[ticker] = amount
        return out
