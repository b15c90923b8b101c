"""
Refresh cached daily closes for the whole universe.

Usage:
    python scripts/refresh_prices.py [--days 10] [TICKER ...]
"""
import sys
import os
import argparse
import logging
from datetime import timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.db.session import engine, SessionLocal
from src.db.models.base import Base
from src.db.repositories.price_repo import PriceRepository
from src.db.repositories.ticker_repo import TickerRepository
from src.config.settings import load_settings
from src.market.hours import MarketHours
from src.providers.yahoo.client import YFinanceQuoteSource
from src.ingestion.service import PriceIngestionService
from src.ingestion.config import IngestionConfig


def main():
    parser = argparse.ArgumentParser(description="Refresh universe prices")
    parser.add_argument("tickers", nargs="*", help="Tickers (default: whole universe)")
    parser.add_argument("--days", type=int, default=10, help="Calendar days to fetch")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)

    settings = load_settings()
    session = SessionLocal()
    try:
        service = PriceIngestionService(
            source=YFinanceQuoteSource(ticker_suffix=settings.ticker_suffix),
            price_repo=PriceRepository(session),
            ticker_repo=TickerRepository(session),
            config=IngestionConfig(
                batch_size=settings.batch_size,
                batch_delay=settings.batch_delay_seconds,
                lookback_days=args.days,
            ),
        )
        tickers = args.tickers or service.universe_tickers()
        print(f"Refreshing {len(tickers)} tickers...")

        end = MarketHours(settings).today()
        report = service.refresh_prices(tickers, start=end - timedelta(days=args.days), end=end)
        print(f"Refresh Report: Success={report.success_count}, Failures={report.failure_count}")
        if report.failures:
            print(f"Failures: {list(report.failures.keys())[:5]}...")
    finally:
        session.close()


if __name__ == "__main__":
    main()
