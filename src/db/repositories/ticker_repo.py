from typing import List, Optional
import pandas as pd
from .base import BaseRepository
from src.db.models.ticker import Ticker

# Columns exposed to the screening engine
UNIVERSE_COLUMNS = [
    "ticker",
    "company_name",
    "asset_type",
    "sector",
    "industry",
    "current_price",
    "upside",
    "fair_value_model",
    "overall_score",
    "dividend_yield",
    "market_cap",
    "average_daily_volume",
    "technical_margin",
    "roe",
    "net_margin",
    "net_debt_ebitda",
    "payout",
    "pe",
    "pb",
]


class TickerRepository(BaseRepository[Ticker]):
    def __init__(self, session):
        super().__init__(session, Ticker)

    def get(self, ticker: str) -> Optional[Ticker]:
        return self.session.get(Ticker, ticker)

    def get_many(self, tickers: List[str]) -> List[Ticker]:
        if not tickers:
            return []
        return self.session.query(Ticker).filter(Ticker.ticker.in_(tickers)).all()

    def upsert(self, ticker_obj: Ticker, commit: bool = True) -> Ticker:
        merged = self.session.merge(ticker_obj)
        if commit:
            self.session.commit()
        return merged

    def universe_frame(self, asset_types: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Screening universe as a DataFrame, one row per ticker.

        Args:
            asset_types: Keep only these asset types (default: all)
        """
        query = self.session.query(Ticker)
        if asset_types:
            query = query.filter(Ticker.asset_type.in_(asset_types))

        rows = [
            {col: getattr(t, col) for col in UNIVERSE_COLUMNS}
            for t in query.order_by(Ticker.ticker).all()
        ]
        return pd.DataFrame(rows, columns=UNIVERSE_COLUMNS)
