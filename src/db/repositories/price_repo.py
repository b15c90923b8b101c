from typing import Iterable, Optional
from datetime import date
from sqlalchemy.orm import Session

from src.db.models.price_cache import PriceCache
from src.providers.base import HistoricalPrice
from .base import BaseRepository


class PriceRepository(BaseRepository[PriceCache]):
    """Read/write access to cached daily closes."""

    def __init__(self, session: Session):
        super().__init__(session, PriceCache)

    def get_price(self, ticker: str, d: date) -> Optional[PriceCache]:
        return self.session.get(PriceCache, (ticker, d))

    def get_last_before(self, ticker: str, d: date) -> Optional[PriceCache]:
        """Latest cached close strictly before d."""
        return (
            self.session.query(PriceCache)
            .filter(PriceCache.ticker == ticker, PriceCache.price_date < d)
            .order_by(PriceCache.price_date.desc())
            .first()
        )

    def get_last_on_or_before(self, ticker: str, d: date) -> Optional[PriceCache]:
        return (
            self.session.query(PriceCache)
            .filter(PriceCache.ticker == ticker, PriceCache.price_date <= d)
            .order_by(PriceCache.price_date.desc())
            .first()
        )

    def upsert_bars(
        self,
        ticker: str,
        bars: Iterable[HistoricalPrice],
        source: str = "yfinance",
        commit: bool = True,
    ) -> int:
        """Store bars for a ticker, overwriting same-day rows. Returns rows written."""
        count = 0
        for bar in bars:
            self.session.merge(
                PriceCache(
                    ticker=ticker,
                    price_date=bar.trade_date,
                    open_price=bar.open,
                    close_price=bar.close,
                    source=source,
                )
            )
            count += 1
        if commit:
            self.session.commit()
        return count
