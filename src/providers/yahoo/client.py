import logging
from datetime import date, timedelta
from typing import List, Optional

import pandas as pd
import yfinance as yf

from ..base import DividendEvent, HistoricalPrice, LiveQuote, QuoteDividendSource
from ..rate_limiter import YahooRateLimiter

logger = logging.getLogger(__name__)


def _bar_date(ts) -> date:
    # yfinance indexes bars by exchange-local timestamps; take the wall date
    # as-is instead of normalising through UTC.
    if isinstance(ts, pd.Timestamp):
        return ts.date()
    return pd.Timestamp(ts).date()


def _is_missing(value) -> bool:
    return value is None or pd.isna(value)


class YFinanceQuoteSource(QuoteDividendSource):
    """yfinance implementation of the quote/dividend source."""

    def __init__(self, ticker_suffix: str = "", rate_limit_delay: float = 0.25):
        self.ticker_suffix = ticker_suffix
        self.limiter = YahooRateLimiter(min_interval=rate_limit_delay)

    def _symbol(self, ticker: str) -> str:
        if self.ticker_suffix and not ticker.endswith(self.ticker_suffix):
            return f"{ticker}{self.ticker_suffix}"
        return ticker

    def fetch_historical_prices(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        interval: str = "1d",
    ) -> List[HistoricalPrice]:
        self.limiter.wait_if_needed()
        t = yf.Ticker(self._symbol(ticker))
        try:
            # yfinance treats `end` as exclusive
            hist = t.history(
                start=start_date.strftime("%Y-%m-%d"),
                end=(end_date + timedelta(days=1)).strftime("%Y-%m-%d"),
                interval=interval,
                auto_adjust=False,
                actions=False,
            )
        except Exception as e:
            logger.warning(f"History fetch failed for {ticker}: {e}")
            return []

        if hist is None or hist.empty:
            return []

        bars = []
        for ts, row in hist.iterrows():
            close = row.get("Close")
            if _is_missing(close) or float(close) <= 0:
                continue
            d = _bar_date(ts)
            if d < start_date or d > end_date:
                continue
            bars.append(
                HistoricalPrice(
                    trade_date=d,
                    open=None if _is_missing(row.get("Open")) else float(row["Open"]),
                    high=None if _is_missing(row.get("High")) else float(row["High"]),
                    low=None if _is_missing(row.get("Low")) else float(row["Low"]),
                    close=float(close),
                    volume=None if _is_missing(row.get("Volume")) else float(row["Volume"]),
                )
            )
        return sorted(bars, key=lambda b: b.trade_date)

    def fetch_live_quote(self, ticker: str) -> Optional[LiveQuote]:
        self.limiter.wait_if_needed()
        t = yf.Ticker(self._symbol(ticker))
        price = None
        try:
            price = t.fast_info.get("lastPrice")
        except Exception as e:
            logger.warning(f"fast_info lookup failed for {ticker}: {e}")

        if _is_missing(price):
            try:
                intraday = t.history(period="1d", interval="1m", actions=False)
                if not intraday.empty:
                    price = intraday["Close"].dropna().iloc[-1]
            except Exception as e:
                logger.warning(f"Intraday fetch failed for {ticker}: {e}")
                return None

        if _is_missing(price) or float(price) <= 0:
            return None
        return LiveQuote(ticker=ticker, price=float(price))

    def fetch_dividend_calendar(self, ticker: str) -> List[DividendEvent]:
        self.limiter.wait_if_needed()
        t = yf.Ticker(self._symbol(ticker))
        try:
            divs = t.dividends
        except Exception as e:
            logger.warning(f"Dividend fetch failed for {ticker}: {e}")
            return []

        if divs is None or divs.empty:
            return []

        return [
            DividendEvent(ticker=ticker, ex_date=_bar_date(ts), amount=float(amount))
            for ts, amount in divs.items()
            if not _is_missing(amount) and float(amount) > 0
        ]
