from sqlalchemy import Column, String, DateTime, Float, func
from .base import Base


class Ticker(Base):
    """Screening universe row: one tradable asset with its latest fundamentals."""

    __tablename__ = "tickers"

    ticker = Column(String(20), primary_key=True)
    company_name = Column(String(255))
    asset_type = Column(String(10), default="STOCK")  # STOCK | BDR | ETF | FII | INDEX | OTHER
    sector = Column(String(100))
    industry = Column(String(100))

    current_price = Column(Float)
    upside = Column(Float)  # percent, best available fair-value model
    fair_value_model = Column(String(20))
    overall_score = Column(Float)  # 0-100
    dividend_yield = Column(Float)  # fraction, 0.08 = 8%
    market_cap = Column(Float)
    average_daily_volume = Column(Float)
    technical_margin = Column(Float)
    roe = Column(Float)
    net_margin = Column(Float)
    net_debt_ebitda = Column(Float)
    payout = Column(Float)
    pe = Column(Float)
    pb = Column(Float)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
