"""CompositionManager - applies screening results as ENTRY/EXIT rebalances."""

import logging
import math
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.db.models.index import CompositionEntry, IndexDefinition
from src.db.repositories.index_repo import CompositionRepository, RebalanceLogRepository
from src.db.repositories.ticker_repo import TickerRepository
from .methodology import MethodologyConfig, validate_methodology
from .models import (
    CompositionChange,
    CompositionUpdateResult,
    RebalanceAction,
    ScreeningCandidate,
)
from .prices import PriceService
from .weights import compute_weights

logger = logging.getLogger(__name__)


def compare_composition(
    current: List[str], candidates: List[ScreeningCandidate]
) -> List[CompositionChange]:
    """ENTRY for new names, EXIT for dropped ones. Continuing names produce nothing."""
    current_set = set(current)
    new_tickers = [c.ticker for c in candidates]
    new_set = set(new_tickers)

    changes = []
    for c in candidates:
        if c.ticker in current_set:
            continue
        detail = []
        if c.overall_score is not None:
            detail.append(f"score {c.overall_score:.2f}")
        if c.upside is not None:
            detail.append(f"upside {c.upside:.1f}%")
        reason = f"Selected by screening (rank {c.rank}"
        reason += f", {', '.join(detail)})" if detail else ")"
        changes.append(
            CompositionChange(action=RebalanceAction.ENTRY, ticker=c.ticker, reason=reason)
        )

    for ticker in sorted(current_set - new_set):
        changes.append(
            CompositionChange(
                action=RebalanceAction.EXIT,
                ticker=ticker,
                reason="No longer meets screening criteria",
            )
        )
    return changes


def generate_rebalance_reason(changes: List[CompositionChange]) -> str:
    entries = [c.ticker for c in changes if c.action == RebalanceAction.ENTRY.value]
    exits = [c.ticker for c in changes if c.action == RebalanceAction.EXIT.value]
    if not entries and not exits:
        return "No composition changes"

    parts = []
    if entries:
        parts.append(f"{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}: {', '.join(entries)}")
    if exits:
        parts.append(f"{len(exits)} exit{'' if len(exits) == 1 else 's'}: {', '.join(exits)}")
    return "Rebalance with " + "; ".join(parts)


class CompositionManager:
    """
    Maintain CompositionEntry spans for an index.

    A rebalance is applied as a single transaction: exits, entries, weight
    updates and log rows are staged and committed together, or rolled back
    together.
    """

    def __init__(self, session: Session, prices: PriceService):
        self.session = session
        self.prices = prices
        self.composition_repo = CompositionRepository(session)
        self.log_repo = RebalanceLogRepository(session)
        self.ticker_repo = TickerRepository(session)

    def current_tickers(self, index_id: str) -> List[str]:
        return [e.ticker for e in self.composition_repo.get_open_entries(index_id)]

    def should_rebalance(
        self,
        index_id: str,
        candidates: List[ScreeningCandidate],
        methodology: MethodologyConfig,
    ) -> bool:
        """
        True when the candidate set differs from the holdings, or when the top
        candidate's upside beats the weakest holding by more than the threshold.
        """
        if not candidates:
            return False

        current = self.current_tickers(index_id)
        if set(current) != {c.ticker for c in candidates}:
            return True

        upsides = [
            t.upside for t in self.ticker_repo.get_many(current) if t.upside is not None
        ]
        best = candidates[0].upside
        if best is None or not upsides:
            return False
        threshold_points = methodology.rebalance.threshold * 100
        return best - min(upsides) > threshold_points

    def update_composition(
        self,
        index_def: IndexDefinition,
        candidates: List[ScreeningCandidate],
        rebalance_date: date,
        changes: Optional[List[CompositionChange]] = None,
    ) -> CompositionUpdateResult:
        """
        Move the index to the candidate set as of rebalance_date's close.

        Empty candidates leave the composition untouched.

        Raises:
            Exception: Whatever the database raised; the session is rolled back
        """
        index_id = index_def.id
        if not candidates:
            logger.warning(f"No candidates for {index_def.ticker}, composition unchanged")
            return CompositionUpdateResult(
                success=False,
                index_id=index_id,
                rebalance_date=rebalance_date,
                message="No candidates; composition unchanged",
            )

        methodology = validate_methodology(index_def.config)
        open_entries = {e.ticker: e for e in self.composition_repo.get_open_entries(index_id)}
        if changes is None:
            changes = compare_composition(list(open_entries), candidates)
        weights = compute_weights(candidates, methodology.weights)

        try:
            exits = self._apply_exits(index_id, open_entries, changes, rebalance_date)
            reweighted = self._apply_reweights(
                index_id, open_entries, candidates, weights, rebalance_date
            )
            entries = self._apply_entries(index_id, candidates, changes, weights, rebalance_date)

            for change in changes:
                self.log_repo.append(
                    index_id, rebalance_date, change.action, change.ticker, change.reason
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error(f"Rebalance of {index_def.ticker} on {rebalance_date} rolled back")
            raise

        message = generate_rebalance_reason(changes)
        logger.info(f"{index_def.ticker} on {rebalance_date}: {message}")
        return CompositionUpdateResult(
            success=True,
            index_id=index_id,
            rebalance_date=rebalance_date,
            entries=entries,
            exits=exits,
            reweighted=reweighted,
            weights=weights,
            message=message,
        )

    def _apply_exits(self, index_id, open_entries, changes, rebalance_date) -> List[str]:
        exits = []
        for change in changes:
            if change.action != RebalanceAction.EXIT.value:
                continue
            entry = open_entries.get(change.ticker)
            if entry is None:
                continue
            exit_price = self.prices.get_close(change.ticker, rebalance_date)
            self.composition_repo.close_entry(entry, rebalance_date, exit_price)
            exits.append(change.ticker)
        self.session.flush()
        return exits

    def _apply_reweights(
        self,
        index_id: str,
        open_entries: Dict[str, CompositionEntry],
        candidates: List[ScreeningCandidate],
        weights: Dict[str, float],
        rebalance_date: date,
    ) -> List[str]:
        """
        Move continuing tickers to their new weight from rebalance_date's close.

        The open span is closed at rebalance_date and a new one opened with the
        new weight, so days up to rebalance_date keep reading the old weight.
        A span opened on rebalance_date itself has no past and is updated in place.
        """
        reopen = []
        for c in candidates:
            entry = open_entries.get(c.ticker)
            if entry is None or entry.exit_date is not None:
                continue
            new_weight = weights[c.ticker]
            if math.isclose(float(entry.weight), new_weight, abs_tol=1e-12):
                continue
            if entry.entry_date >= rebalance_date:
                entry.weight = new_weight
                continue

            price = self.prices.get_close(c.ticker, rebalance_date)
            if price is None:
                price = c.current_price
            self.composition_repo.close_entry(entry, rebalance_date, price)
            reopen.append((c.ticker, new_weight, price))

        # Closed spans must reach the database before their successors open
        self.session.flush()
        for ticker, weight, price in reopen:
            self.composition_repo.open_entry(index_id, ticker, weight, rebalance_date, price)
            logger.info(f"{ticker}: weight set to {weight:.4f} from {rebalance_date}")
        return [ticker for ticker, _, _ in reopen]

    def _apply_entries(
        self,
        index_id: str,
        candidates: List[ScreeningCandidate],
        changes: List[CompositionChange],
        weights: Dict[str, float],
        rebalance_date: date,
    ) -> List[str]:
        by_ticker = {c.ticker: c for c in candidates}
        entries = []
        for change in changes:
            if change.action != RebalanceAction.ENTRY.value:
                continue
            candidate = by_ticker.get(change.ticker)
            if candidate is None:
                continue
            entry_price = self.prices.get_close(change.ticker, rebalance_date)
            if entry_price is None:
                entry_price = candidate.current_price
            self.composition_repo.open_entry(
                index_id,
                change.ticker,
                weights[change.ticker],
                rebalance_date,
                entry_price,
            )
            entries.append(change.ticker)
        return entries
