"""
Recalculate an index's points with up-to-date dividend data.

Usage:
    python scripts/recalculate_index.py VALUE11 [--start 2024-03-01] [--dry-run]
"""
import sys
import os
import argparse
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.db.session import SessionLocal
from src.db.repositories.index_repo import IndexDefinitionRepository
from src.index.services import build_services


def main():
    parser = argparse.ArgumentParser(description="Recalculate index history with dividends")
    parser.add_argument("index", help="Index ticker or id")
    parser.add_argument("--start", default=None, help="First date to recalculate (YYYY-MM-DD)")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--fix-start", action="store_true", help="Anchor the first point at 100")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    session = SessionLocal()
    try:
        repo = IndexDefinitionRepository(session)
        index = repo.get_by_ticker(args.index) or repo.get_index(args.index)
        if index is None:
            print(f"❌ Index {args.index} not found")
            sys.exit(1)

        services = build_services(session)
        pending = services.engine.check_pending_dividends(index.id)
        if pending.has_pending:
            print(f"Pending dividends for {index.ticker}:")
            for p in pending.pending_dividends:
                print(f"  {p.ex_date} {p.ticker} {p.amount:.4f}")

        result = services.engine.recalculate_index_with_dividends(
            index.id, start_date=args.start, dry_run=args.dry_run
        )
        label = "Would recalculate" if args.dry_run else "Recalculated"
        print(f"{label} {result.recalculated} points ({result.dividends_found} dividends)")
        for p in result.new_points[-10:]:
            print(f"  {p.date}: {p.old_points:.4f} -> {p.new_points:.4f}")
        for err in result.errors:
            print(f"  ! {err}")

        if args.fix_start and not args.dry_run:
            if services.engine.fix_index_starting_point(index.id):
                print("Added base-100 anchor point")
    finally:
        session.close()


if __name__ == "__main__":
    main()
