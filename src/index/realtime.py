"""Intraday index estimate from live quotes."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from src.cache.ttl_cache import TTLCache
from src.config.settings import EngineSettings
from src.db.models.index import HistoryPoint
from src.db.repositories.history_repo import HistoryRepository
from src.db.repositories.index_repo import IndexDefinitionRepository, CompositionRepository
from src.errors import CannotComputeError
from src.market.hours import MarketHours
from .models import RealTimeReturn
from .prices import PriceService

logger = logging.getLogger(__name__)


class RealTimeReturnCalculator:
    """
    Estimate the index level right now.

    Cache policy by session state:

        market open                      -> cached for realtime_open_ttl_seconds
        closed, today's point posted     -> cached for realtime_closed_ttl_seconds
        closed, today's point not posted -> never cached, always recomputed

    The last case covers the gap between the session close and the
    after-market job; an estimate must not be served as final there.
    """

    def __init__(
        self,
        session: Session,
        prices: PriceService,
        cache: TTLCache,
        hours: MarketHours,
        settings: Optional[EngineSettings] = None,
    ):
        self.session = session
        self.prices = prices
        self.cache = cache
        self.hours = hours
        self.settings = settings or EngineSettings()
        self.index_repo = IndexDefinitionRepository(session)
        self.composition_repo = CompositionRepository(session)
        self.history_repo = HistoryRepository(session)

    def _key(self, index_id: str, state: str) -> str:
        return f"realtime:{index_id}:{state}:{self.hours.today().isoformat()}"

    def calculate_real_time_return(self, index_id: str) -> RealTimeReturn:
        """
        Raises:
            CannotComputeError: No official point yet, or no usable live quote
        """
        index_def = self.index_repo.get_index(index_id)
        if index_def is None:
            raise CannotComputeError(f"Index {index_id} not found")

        last = self.history_repo.get_last(index_id)
        if last is None:
            raise CannotComputeError(f"Index {index_id} has no official points yet")

        today = self.hours.today()
        is_open = self.hours.is_open()
        has_closing_price = last.date == today and bool(last.composition_snapshot)

        if is_open:
            state, ttl = "open", self.settings.realtime_open_ttl_seconds
        elif has_closing_price:
            state, ttl = "closed", self.settings.realtime_closed_ttl_seconds
        else:
            dropped = self.cache.invalidate_prefix(f"realtime:{index_id}:")
            if dropped:
                logger.debug(f"Dropped {dropped} cached estimates for {index_id}")
            return self._compute(index_def, last, is_open, has_closing_price)

        key = self._key(index_id, state)
        cached = self.cache.get(key)
        if cached is not None and cached.last_official_date == last.date:
            return cached.model_copy(update={"from_cache": True})

        result = self._compute(index_def, last, is_open, has_closing_price)
        self.cache.set(key, result, ttl)
        return result

    def _compute(
        self, index_def, last: HistoryPoint, is_open: bool, has_closing_price: bool
    ) -> RealTimeReturn:
        base = float(index_def.base_value or 100.0)
        last_points = float(last.point)

        if has_closing_price and not is_open:
            # Today's official close is final
            return self._result(
                base, last, last_points, float(last.daily_change or 0.0),
                is_open, True, len(last.composition_snapshot or {}),
            )

        holdings = self.composition_repo.get_active_at_close(index_def.id, last.date)
        snapshot = last.composition_snapshot or {}

        weighted_return = 0.0
        priced_weight = 0.0
        priced = 0
        for entry in holdings:
            row = snapshot.get(entry.ticker) or {}
            last_close = row.get("price")
            if last_close is None:
                last_close = self.prices.get_cached_close_on_or_before(entry.ticker, last.date)
            if last_close is None:
                last_close = entry.entry_price
            if not last_close or last_close <= 0:
                logger.warning(f"No reference close for {entry.ticker}, skipping")
                continue

            live = self.prices.get_live_price(entry.ticker)
            if live is None:
                logger.warning(f"No live quote for {entry.ticker}, skipping")
                continue

            weight = float(entry.weight)
            weighted_return += weight * (live / float(last_close) - 1)
            priced_weight += weight
            priced += 1

        if priced_weight <= 0:
            raise CannotComputeError(
                f"No live quotes available for index {index_def.ticker}"
            )

        daily_change = weighted_return * 100
        real_time_points = last_points * (1 + weighted_return)
        logger.info(
            f"{index_def.ticker} live: {real_time_points:.4f} ({daily_change:+.4f}%, "
            f"{priced}/{len(holdings)} priced)"
        )
        return self._result(
            base, last, real_time_points, daily_change, is_open, has_closing_price, priced
        )

    def _result(
        self, base, last, points, daily_change, is_open, has_closing_price, priced
    ) -> RealTimeReturn:
        return RealTimeReturn(
            real_time_points=points,
            real_time_return=(points - base) / base * 100,
            daily_change=daily_change,
            last_official_points=float(last.point),
            last_official_date=last.date,
            is_market_open=is_open,
            last_available_daily_change=last.daily_change,
            has_closing_price=has_closing_price,
            priced_tickers=priced,
            computed_at=self.hours.local_now(),
        )
