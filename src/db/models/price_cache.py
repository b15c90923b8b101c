"""Price cache model for storing historical ticker prices."""

from sqlalchemy import Column, String, Date, Float, DateTime, Index, func
from .base import Base


class PriceCache(Base):
    """Cached daily prices for tickers.

    Avoids repeated quote-source calls while marking indices to market.
    """
    __tablename__ = "price_cache"

    ticker = Column(String(20), primary_key=True)
    price_date = Column(Date, primary_key=True)
    open_price = Column(Float)
    close_price = Column(Float, nullable=False)

    # Metadata
    fetched_at = Column(DateTime, server_default=func.now())
    source = Column(String(50), default="yfinance")

    __table_args__ = (
        Index('idx_price_cache_date', 'price_date'),
    )
