"""IndexEngine - daily mark-to-market of index points."""

import logging
import math
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from src.config.settings import EngineSettings
from src.db.models.index import CompositionEntry, HistoryPoint
from src.db.repositories.history_repo import HistoryRepository
from src.db.repositories.index_repo import IndexDefinitionRepository, CompositionRepository
from src.db.repositories.ticker_repo import TickerRepository
from src.market.calendar import (
    DateLike,
    business_days_between,
    parse_iso_date,
    previous_business_day,
)
from src.market.hours import MarketHours
from .models import (
    ConsistencyCheck,
    DailyReturn,
    LastSnapshot,
    PendingDividend,
    PendingDividendsResult,
    RecalculatedPoint,
    RecalculationResult,
)
from .prices import PriceService

logger = logging.getLogger(__name__)

BASE_VALUE = 100.0


def check_consistency(
    contributions: Dict[str, float], daily_change: float, tolerance: float
) -> ConsistencyCheck:
    """Compare summed per-ticker contributions with the day's change (percent)."""
    difference = abs(sum(contributions.values()) - daily_change)
    return ConsistencyCheck(
        is_valid=difference < tolerance, difference=difference, tolerance=tolerance
    )


class IndexEngine:
    """
    Mark indices to market, one business day at a time.

    For day d with prior point P and holdings w_i:
        r_i  = close_i(d) / close_i(prev) - 1 + dividend_i(d) / close_i(prev)
        dailyChange = 100 * sum(w_i * r_i)
        point(d) = P * (1 + dailyChange / 100)

    The first point of an index is its base value (100) with no change.
    Writing a day is an upsert on (index_id, date), so re-running a day
    overwrites it instead of adding a row.
    """

    def __init__(
        self,
        session: Session,
        prices: PriceService,
        settings: Optional[EngineSettings] = None,
        hours: Optional[MarketHours] = None,
        tolerance: Optional[float] = None,
    ):
        self.session = session
        self.prices = prices
        self.settings = settings or EngineSettings()
        self.hours = hours or MarketHours(self.settings)
        self.tolerance = (
            tolerance if tolerance is not None else self.settings.contribution_tolerance
        )
        self.holidays = frozenset(self.settings.holidays)

        self.index_repo = IndexDefinitionRepository(session)
        self.composition_repo = CompositionRepository(session)
        self.history_repo = HistoryRepository(session)
        self.ticker_repo = TickerRepository(session)

    # ------------------------------------------------------------------
    # Daily computation
    # ------------------------------------------------------------------

    def calculate_daily_return(
        self, index_id: str, d: date, skip_cache: bool = False
    ) -> Optional[DailyReturn]:
        """
        Compute (without persisting) the index point for d.

        Returns None when there is nothing to compute: no holdings, or no
        ticker priced on d.
        """
        prior = self.history_repo.get_last_before(index_id, d)
        if prior is None:
            return self._inception_point(index_id, d, skip_cache)

        holdings = self.composition_repo.get_holdings_for_returns(index_id, d)
        if not holdings and prior.is_virtual:
            # First real day after a virtual anchor: roll forward from the
            # anchor with the holdings the index started with
            holdings = self.composition_repo.get_active_at_close(index_id, d)
        if not holdings:
            logger.warning(f"Index {index_id} has no holdings going into {d}")
            return None

        previous_point = float(prior.point)
        contributions: Dict[str, float] = {}
        dividends: Dict[str, float] = {}
        snapshot: Dict[str, dict] = {}
        missing: List[str] = []

        for entry in holdings:
            ticker = entry.ticker
            close = self.prices.get_close(ticker, d, skip_cache=skip_cache)
            prev = self.prices.get_previous_close(ticker, d, skip_cache=skip_cache)
            if close is None or prev is None or prev[1] <= 0:
                logger.warning(f"Missing price data for {ticker} on {d}, skipping")
                missing.append(ticker)
                continue

            prev_close = self._guard_suspicious_return(entry, d, close, prev[1])
            dividend = self.prices.get_dividend_on(ticker, d, prev_session=prev[0])

            price_return = close / prev_close - 1
            dividend_yield = dividend / prev_close
            weight = float(entry.weight)
            contributions[ticker] = weight * (price_return + dividend_yield) * 100

            if dividend > 0:
                dividends[ticker] = dividend
                logger.info(
                    f"{ticker}: dividend {dividend:.4f} ex on {d} "
                    f"(yield {dividend_yield * 100:.4f}%)"
                )

            snapshot[ticker] = self._snapshot_row(entry, close)

        if not contributions:
            logger.warning(f"No priced holdings for index {index_id} on {d}")
            return None

        daily_change = sum(contributions.values())
        point = previous_point * (1 + daily_change / 100)
        logger.info(
            f"Index {index_id} {d}: {previous_point:.4f} x (1 + {daily_change:.4f}%) "
            f"= {point:.4f}"
        )

        return DailyReturn(
            index_id=index_id,
            date=d,
            point=point,
            previous_point=previous_point,
            daily_change=daily_change,
            contributions=contributions,
            dividends_by_ticker=dividends,
            dividends_received=float(prior.dividends_received or 0.0) + sum(dividends.values()),
            composition_snapshot=snapshot,
            current_yield=self._weighted_yield(holdings),
            missing_tickers=missing,
            consistency=check_consistency(contributions, daily_change, self.tolerance),
        )

    def _inception_point(
        self, index_id: str, d: date, skip_cache: bool
    ) -> Optional[DailyReturn]:
        holdings = self.composition_repo.get_active_at_close(index_id, d)
        if not holdings:
            logger.warning(f"Index {index_id} has no composition on {d}, cannot start")
            return None

        index_def = self.index_repo.get_index(index_id)
        base = float(index_def.base_value) if index_def and index_def.base_value else BASE_VALUE

        snapshot = {}
        for entry in holdings:
            close = self.prices.get_close(entry.ticker, d, skip_cache=skip_cache)
            snapshot[entry.ticker] = self._snapshot_row(
                entry, close if close is not None else entry.entry_price
            )

        logger.info(f"Index {index_id} starts on {d} at {base:.2f}")
        return DailyReturn(
            index_id=index_id,
            date=d,
            point=base,
            previous_point=base,
            daily_change=0.0,
            composition_snapshot=snapshot,
            current_yield=self._weighted_yield(holdings),
            is_inception=True,
            consistency=check_consistency({}, 0.0, self.tolerance),
        )

    def _guard_suspicious_return(
        self, entry: CompositionEntry, d: date, close: float, prev_close: float
    ) -> float:
        """
        Replace a bogus previous close with the entry price.

        A >50% one-day move shortly after entry, where the previous close is
        far from the price we entered at, is almost always a bad quote.
        """
        raw_return = close / prev_close - 1
        if abs(raw_return) <= self.settings.suspicious_return_threshold:
            return prev_close
        if not entry.entry_price or entry.entry_price <= 0:
            return prev_close

        days_since_entry = (d - entry.entry_date).days
        gap = abs(prev_close - entry.entry_price) / entry.entry_price
        logger.error(
            f"Suspicious return for {entry.ticker} on {d}: {raw_return * 100:.2f}% "
            f"(prev {prev_close:.2f}, entry {entry.entry_price:.2f}, {days_since_entry}d ago)"
        )
        if (
            days_since_entry <= self.settings.suspicious_entry_window_days
            and gap > self.settings.suspicious_entry_price_gap
        ):
            logger.warning(f"Using entry price {entry.entry_price:.2f} as previous close")
            return float(entry.entry_price)
        return prev_close

    def _snapshot_row(self, entry: CompositionEntry, price: Optional[float]) -> dict:
        return {
            "weight": float(entry.weight),
            "price": price,
            "entry_price": entry.entry_price,
            "entry_date": entry.entry_date.isoformat() if entry.entry_date else None,
        }

    def _weighted_yield(self, holdings: List[CompositionEntry]) -> Optional[float]:
        """Weight-averaged dividend yield (percent) over holdings with a known yield."""
        tickers = {t.ticker: t for t in self.ticker_repo.get_many([h.ticker for h in holdings])}
        total, weight_sum = 0.0, 0.0
        for h in holdings:
            info = tickers.get(h.ticker)
            if info is None or info.dividend_yield is None:
                continue
            total += float(h.weight) * float(info.dividend_yield) * 100
            weight_sum += float(h.weight)
        return total / weight_sum if weight_sum > 0 else None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def update_index_points(
        self,
        index_id: str,
        d: DateLike,
        force: bool = False,
        skip_cache: bool = False,
    ) -> bool:
        """
        Compute and store the point for one day.

        Args:
            index_id: Index to update
            d: Trading day (date or YYYY-MM-DD)
            force: Rewrite even if an equivalent point is already stored
            skip_cache: Re-fetch prices from the source

        Returns:
            True if the day's point is stored, False if it could not be computed

        Raises:
            InvalidInputError: If d is not a valid date
        """
        d = parse_iso_date(d)
        if not self.hours.is_trading_day(d):
            logger.info(f"Skipping {d} for index {index_id}: no session that day")
            return False

        if self.index_repo.get_index(index_id) is None:
            logger.warning(f"Index {index_id} not found")
            return False

        daily = self.calculate_daily_return(index_id, d, skip_cache=skip_cache)
        if daily is None:
            return False

        existing = self.history_repo.get_point(index_id, d)
        if existing is not None and not force:
            if (
                abs(float(existing.point) - daily.point) < 1e-9
                and (existing.dividends_by_ticker or {}) == daily.dividends_by_ticker
                and existing.composition_snapshot
            ):
                logger.info(f"Point for {index_id} on {d} already up to date")
                return True

        self._store(daily)
        return True

    def _store(self, daily: DailyReturn, commit: bool = True) -> HistoryPoint:
        consistency = daily.consistency or check_consistency(
            daily.contributions, daily.daily_change, self.tolerance
        )
        if not consistency.is_valid:
            logger.warning(
                f"Contributions for {daily.index_id} on {daily.date} are off by "
                f"{consistency.difference:.6f} (tolerance {self.tolerance})"
            )
        point = HistoryPoint(
            index_id=daily.index_id,
            date=daily.date,
            point=daily.point,
            daily_change=daily.daily_change,
            dividends_received=daily.dividends_received,
            dividends_by_ticker=dict(daily.dividends_by_ticker) or None,
            daily_contributions_by_ticker=dict(daily.contributions),
            composition_snapshot=dict(daily.composition_snapshot) or None,
            current_yield=daily.current_yield,
            is_virtual=False,
            is_consistent=consistency.is_valid,
            consistency_difference=consistency.difference,
        )
        return self.history_repo.upsert(point, commit=commit)

    def validate_point(self, point: HistoryPoint) -> ConsistencyCheck:
        return check_consistency(
            point.daily_contributions_by_ticker or {},
            float(point.daily_change or 0.0),
            self.tolerance,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def fix_index_starting_point(self, index_id: str) -> bool:
        """
        Anchor an index whose first point is not the base value.

        Adds a virtual base-value point one business day before the first
        point. Returns True if a point was added.
        """
        first = self.history_repo.get_first(index_id)
        if first is None:
            logger.info(f"No points for index {index_id}, nothing to fix")
            return False

        if math.isclose(float(first.point), BASE_VALUE, abs_tol=1e-9):
            return False

        anchor_date = previous_business_day(first.date, self.holidays)
        anchor = HistoryPoint(
            index_id=index_id,
            date=anchor_date,
            point=BASE_VALUE,
            daily_change=0.0,
            dividends_received=0.0,
            daily_contributions_by_ticker={},
            current_yield=first.current_yield,
            is_virtual=True,
            is_consistent=True,
            consistency_difference=0.0,
        )
        self.history_repo.upsert(anchor)
        logger.info(
            f"Fixed starting point for index {index_id}: virtual {BASE_VALUE} on {anchor_date}"
        )
        return True

    def pending_business_days(self, index_id: str, until: Optional[date] = None) -> List[date]:
        """
        Business days still missing a point, oldest first.

        Runs from the day after the last point (or from inception when the
        index has none) through `until` (default: last closed session).
        """
        index_def = self.index_repo.get_index(index_id)
        if index_def is None:
            return []
        end = until or self.hours.last_closed_session()
        last = self.history_repo.get_last(index_id)
        start = last.date + timedelta(days=1) if last else index_def.inception_date
        if start > end:
            return []
        return business_days_between(start, end, self.holidays)

    def fill_missing_history(self, index_id: str) -> int:
        """Compute every pending day in order. Returns how many were stored."""
        days = self.pending_business_days(index_id)
        if not days:
            return 0

        logger.info(f"Found {len(days)} missing days for index {index_id}")
        filled = 0
        for d in days:
            if self.update_index_points(index_id, d):
                filled += 1
        logger.info(f"Filled {filled}/{len(days)} missing days for index {index_id}")
        return filled

    def recalculate_index_with_dividends(
        self,
        index_id: str,
        start_date: Optional[DateLike] = None,
        dry_run: bool = False,
    ) -> RecalculationResult:
        """
        Re-run every stored day from start_date (default: inception) forward.

        Used when a dividend is discovered after its ex-date was processed.
        Dividend calendars are re-fetched first. With dry_run, nothing is
        written and `recalculated` is the number of days that would be.

        Raises:
            InvalidInputError: If start_date is malformed
        """
        start = parse_iso_date(start_date) if start_date is not None else None

        points = self.history_repo.list_points(index_id)
        if not points:
            return RecalculationResult(
                success=False,
                errors=["No historical points found for index"],
                dry_run=dry_run,
            )

        targets = [
            p.date for p in points if not p.is_virtual and (start is None or p.date >= start)
        ]
        old_points = {p.date: float(p.point) for p in points}
        if not targets:
            return RecalculationResult(success=True, dry_run=dry_run)

        self.prices.invalidate_dividends()

        if dry_run:
            dividends_found = 0
            errors = []
            for d in targets:
                try:
                    dividends_found += len(self._dividends_for_day(index_id, d))
                except Exception as e:
                    logger.error(f"Dividend lookup failed for {index_id} on {d}: {e}")
                    errors.append(f"Error checking dividends for {d}: {e}")
            return RecalculationResult(
                success=not errors,
                recalculated=len(targets),
                dividends_found=dividends_found,
                errors=errors,
                dry_run=True,
            )

        recalculated = 0
        dividends_found = 0
        new_points: List[RecalculatedPoint] = []
        errors: List[str] = []

        for d in targets:
            try:
                daily = self.calculate_daily_return(index_id, d)
                if daily is None:
                    errors.append(f"Failed to calculate return for {d.isoformat()}")
                    continue
                self._store(daily)
                dividends_found += len(daily.dividends_by_ticker)
                new_points.append(
                    RecalculatedPoint(date=d, old_points=old_points[d], new_points=daily.point)
                )
                recalculated += 1
            except Exception as e:
                self.session.rollback()
                logger.error(f"Error recalculating {index_id} on {d}: {e}")
                errors.append(f"Error recalculating point {d.isoformat()}: {e}")

        logger.info(
            f"Recalculated {recalculated}/{len(targets)} points for index {index_id} "
            f"({dividends_found} dividends)"
        )
        return RecalculationResult(
            success=not errors,
            recalculated=recalculated,
            dividends_found=dividends_found,
            new_points=new_points,
            errors=errors,
        )

    def _dividends_for_day(self, index_id: str, d: date) -> Dict[str, float]:
        holdings = self.composition_repo.get_holdings_for_returns(index_id, d)
        return self.prices.dividends_for_tickers([h.ticker for h in holdings], d)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def check_pending_dividends(self, index_id: str) -> PendingDividendsResult:
        """
        List dividends going ex between the last point and today that no
        stored point has accounted for. Read-only.
        """
        last = self.history_repo.get_last(index_id)
        if last is None:
            return PendingDividendsResult()

        today = self.hours.today()
        tickers = sorted(
            {e.ticker for e in self.composition_repo.get_active_at_close(index_id, last.date)}
            | {e.ticker for e in self.composition_repo.get_open_entries(index_id)}
        )
        points = {p.date: p for p in self.history_repo.list_points(index_id, start=last.date)}

        pending: List[PendingDividend] = []
        errors: List[str] = []
        for ticker in tickers:
            try:
                events = self.prices.get_dividends_between(ticker, last.date, today)
            except Exception as e:
                logger.error(f"Dividend calendar failed for {ticker}: {e}")
                errors.append(f"{ticker}: {e}")
                continue
            for event in events:
                point = points.get(event.ex_date)
                processed = bool(point and (point.dividends_by_ticker or {}).get(ticker))
                if not processed:
                    pending.append(
                        PendingDividend(ticker=ticker, ex_date=event.ex_date, amount=event.amount)
                    )

        pending.sort(key=lambda p: (p.ex_date, p.ticker))
        return PendingDividendsResult(
            has_pending=bool(pending), pending_dividends=pending, errors=errors
        )

    def calculate_current_yield(self, index_id: str) -> Optional[float]:
        holdings = self.composition_repo.get_open_entries(index_id)
        if not holdings:
            return None
        return self._weighted_yield(holdings)

    def check_after_market_ran_today(self, index_id: str) -> bool:
        point = self.history_repo.get_point(index_id, self.hours.today())
        return point is not None and bool(point.composition_snapshot)

    def get_last_snapshot(self, index_id: str) -> Optional[LastSnapshot]:
        """Most recent point carrying a usable composition snapshot."""
        for point in reversed(self.history_repo.list_points(index_id)):
            snapshot = point.composition_snapshot
            if not snapshot:
                continue
            if all(isinstance(row, dict) and row.get("weight") is not None for row in snapshot.values()):
                return LastSnapshot(
                    date=point.date, snapshot=snapshot, constituent_count=len(snapshot)
                )
        return None
