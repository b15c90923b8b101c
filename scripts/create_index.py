"""
Create an index from a JSON methodology file.

Usage:
    python scripts/create_index.py --ticker VALUE11 --name "Value Index" \
        --config methodology.json [--inception 2024-01-02]
"""
import sys
import os
import json
import argparse
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.db.session import engine, SessionLocal
from src.db.models.base import Base
from src.db.repositories.index_repo import IndexDefinitionRepository
from src.config.settings import load_settings
from src.errors import InvalidInputError
from src.market.calendar import parse_iso_date
from src.market.hours import MarketHours


def main():
    parser = argparse.ArgumentParser(description="Create an index")
    parser.add_argument("--ticker", required=True)
    parser.add_argument("--name", required=True)
    parser.add_argument("--config", required=True, help="Path to methodology JSON")
    parser.add_argument("--description", default=None)
    parser.add_argument("--inception", default=None, help="YYYY-MM-DD (default: today)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)

    with open(args.config, "r", encoding="utf-8") as f:
        methodology = json.load(f)

    settings = load_settings()
    session = SessionLocal()
    try:
        inception = (
            parse_iso_date(args.inception) if args.inception else MarketHours(settings).today()
        )
        index = IndexDefinitionRepository(session).create_index(
            ticker=args.ticker,
            name=args.name,
            config=methodology,
            inception_date=inception,
            description=args.description,
        )
        print(f"✅ Created index {index.ticker} ({index.id}), inception {inception}")
    except InvalidInputError as e:
        print(f"❌ {e}")
        print(f"   Input: {e.raw_input}")
        sys.exit(1)
    finally:
        session.close()


if __name__ == "__main__":
    main()
