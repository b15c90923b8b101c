"""
Run one cron invocation: mark-to-market for every index, then screening.

Intended to be triggered every few minutes by an external scheduler. Each
invocation works under a time budget and resumes from its checkpoints.
"""
import sys
import os
import argparse
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.db.session import engine, SessionLocal
from src.db.models.base import Base
from src.config.settings import load_settings
from src.index.services import build_services
from src.cron.tracker import CronCheckpointTracker


def main():
    parser = argparse.ArgumentParser(description="Run index cron jobs once")
    parser.add_argument("--budget", type=float, default=None, help="Time budget in seconds")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    Base.metadata.create_all(bind=engine)

    settings = load_settings()
    session = SessionLocal()
    try:
        services = build_services(session, settings=settings)
        tracker = CronCheckpointTracker(services, time_budget_seconds=args.budget)
        reports = tracker.run()
    finally:
        session.close()

    for job, report in reports.items():
        print(f"\n=== {job} ===")
        print(
            f"processed={report.processed} succeeded={report.succeeded} "
            f"failed={report.failed} skipped={report.skipped} total={report.total}"
        )
        print(f"completed={report.completed} timed_out={report.timed_out}")
        if report.message:
            print(report.message)
        for err in report.errors[:20]:
            print(f"  ! {err}")


if __name__ == "__main__":
    main()
