"""Per-constituent performance over an index's history."""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.db.models.index import CompositionEntry, HistoryPoint
from src.db.repositories.history_repo import HistoryRepository
from src.db.repositories.index_repo import CompositionRepository
from src.market.hours import MarketHours
from .models import AssetPerformance, HoldingSpan
from .prices import PriceService

logger = logging.getLogger(__name__)


class AssetPerformanceAggregator:
    """Read-only aggregation over CompositionEntry spans and HistoryPoints."""

    def __init__(self, session: Session, prices: PriceService, hours: MarketHours):
        self.session = session
        self.prices = prices
        self.hours = hours
        self.composition_repo = CompositionRepository(session)
        self.history_repo = HistoryRepository(session)

    def calculate_asset_performance(
        self, index_id: str, ticker: str
    ) -> Optional[AssetPerformance]:
        """Performance of one ticker, or None if it was never a constituent."""
        entries = self.composition_repo.get_entries_for_ticker(index_id, ticker)
        if not entries:
            return None
        points = self.history_repo.list_points(index_id)
        return self._aggregate(ticker, entries, points)

    def list_all_assets_performance(self, index_id: str) -> List[AssetPerformance]:
        """Every ticker that was ever a constituent, best contributor first."""
        by_ticker: Dict[str, List[CompositionEntry]] = {}
        for entry in self.composition_repo.get_all_entries(index_id):
            by_ticker.setdefault(entry.ticker, []).append(entry)
        if not by_ticker:
            return []

        points = self.history_repo.list_points(index_id)
        results = [self._aggregate(t, spans, points) for t, spans in by_ticker.items()]
        results.sort(key=lambda p: (-p.contribution_to_index, p.ticker))
        return results

    def _aggregate(
        self, ticker: str, entries: List[CompositionEntry], points: List[HistoryPoint]
    ) -> AssetPerformance:
        entries = sorted(entries, key=lambda e: e.entry_date)
        today = self.hours.today()

        contribution = 0.0
        weights = []
        snapshot_dates = []
        last_price = None
        for p in points:
            contrib = (p.daily_contributions_by_ticker or {}).get(ticker)
            if contrib is not None:
                contribution += float(contrib)
            row = (p.composition_snapshot or {}).get(ticker)
            if row:
                snapshot_dates.append(p.date)
                if row.get("weight") is not None:
                    weights.append(float(row["weight"]))
                if row.get("price") is not None:
                    last_price = float(row["price"])

        spans = []
        growth = 1.0
        has_return = False
        for entry in entries:
            end_price = entry.exit_price
            if entry.exit_date is None:
                end_price = last_price
                if end_price is None:
                    end_price = self.prices.get_cached_close_on_or_before(ticker, today)
            span_return = None
            if entry.entry_price and end_price is not None:
                span_return = (end_price / entry.entry_price - 1) * 100
                growth *= 1 + span_return / 100
                has_return = True
            spans.append(
                HoldingSpan(
                    entry_date=entry.entry_date,
                    exit_date=entry.exit_date,
                    entry_price=entry.entry_price,
                    exit_price=entry.exit_price,
                    days_in_index=((entry.exit_date or today) - entry.entry_date).days,
                    total_return=span_return,
                )
            )

        first, last = entries[0], entries[-1]
        active = any(e.exit_date is None for e in entries)
        return AssetPerformance(
            ticker=ticker,
            entry_date=first.entry_date,
            exit_date=None if active else last.exit_date,
            entry_price=first.entry_price,
            exit_price=None if active else last.exit_price,
            days_in_index=sum(s.days_in_index for s in spans),
            total_return=(growth - 1) * 100 if has_return else None,
            contribution_to_index=contribution,
            average_weight=sum(weights) / len(weights) if weights else 0.0,
            status="ACTIVE" if active else "EXITED",
            first_snapshot_date=snapshot_dates[0] if snapshot_dates else None,
            last_snapshot_date=snapshot_dates[-1] if snapshot_dates else None,
            spans=spans,
        )
