import logging
import time
from datetime import date, timedelta
from typing import Callable, List, Optional

from tqdm import tqdm

from src.db.repositories.index_repo import CompositionRepository, IndexDefinitionRepository
from src.db.repositories.price_repo import PriceRepository
from src.db.repositories.ticker_repo import TickerRepository
from src.providers.base import QuoteDividendSource
from src.providers.batching import fetch_in_batches
from .config import IngestionConfig
from .report import IngestionReport

logger = logging.getLogger(__name__)


class PriceIngestionService:
    """
    Refresh the price_cache table from the quote source.

    Tickers are fetched batch_size at a time with a pause between batches so
    the upstream rate limit is respected. One ticker failing never stops the
    run; it is retried, then recorded in the report.
    """

    def __init__(
        self,
        source: QuoteDividendSource,
        price_repo: PriceRepository,
        ticker_repo: TickerRepository,
        config: Optional[IngestionConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.price_repo = price_repo
        self.ticker_repo = ticker_repo
        self.config = config or IngestionConfig()
        self.sleep = sleep

    def universe_tickers(self) -> List[str]:
        """Every ticker in the universe plus every current index constituent."""
        session = self.ticker_repo.session
        tickers = {t.ticker for t in self.ticker_repo.get_all(limit=None)}
        composition_repo = CompositionRepository(session)
        for index_def in IndexDefinitionRepository(session).get_all_indices():
            tickers.update(e.ticker for e in composition_repo.get_open_entries(index_def.id))
        return sorted(tickers)

    def refresh_prices(
        self,
        tickers: List[str],
        start: Optional[date] = None,
        end: Optional[date] = None,
        show_progress: bool = True,
    ) -> IngestionReport:
        """
        Fetch daily bars for tickers in [start, end] and upsert them.

        Args:
            tickers: Tickers to refresh
            start: First day (default: end - lookback_days)
            end: Last day (default: today)
            show_progress: Show a tqdm bar

        Returns:
            IngestionReport with per-ticker bar counts and failures
        """
        end = end or date.today()
        start = start or end - timedelta(days=self.config.lookback_days)
        report = IngestionReport()

        progress = tqdm(total=len(tickers), desc="Refreshing prices", disable=not show_progress)

        def refresh(ticker: str) -> int:
            report.add_attempt(ticker)
            try:
                return self._refresh_one(ticker, start, end)
            finally:
                progress.update(1)

        try:
            counts, failures = fetch_in_batches(
                tickers,
                refresh,
                batch_size=self.config.batch_size,
                delay_seconds=self.config.batch_delay,
                sleep=self.sleep,
            )
        finally:
            progress.close()
        self.price_repo.session.commit()

        for ticker in tickers:
            if ticker in failures:
                report.add_failure(ticker, failures[ticker])
            elif counts.get(ticker, 0) == 0:
                report.add_failure(ticker, "No price data returned")
            else:
                report.add_success(ticker, counts[ticker])

        logger.info(
            f"Price refresh: {report.success_count} ok, {report.failure_count} failed "
            f"of {len(tickers)}"
        )
        return report

    def _refresh_one(self, ticker: str, start: date, end: date) -> int:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.config.retry_count + 1):
            try:
                bars = self.source.fetch_historical_prices(ticker, start, end, "1d")
                return self.price_repo.upsert_bars(ticker, bars, commit=False)
            except Exception as e:
                last_error = e
                logger.warning(f"{ticker}: attempt {attempt} failed: {e}")
                if attempt < self.config.retry_count:
                    self.sleep(self.config.retry_delay)
        raise last_error
