"""Wire the index components together around one session."""

from typing import Optional

from sqlalchemy.orm import Session

from src.cache.ttl_cache import TTLCache
from src.config.settings import EngineSettings, load_settings
from src.market.clock import Clock
from src.market.hours import MarketHours
from src.providers.base import QuoteDividendSource
from .composition import CompositionManager
from .engine import IndexEngine
from .performance import AssetPerformanceAggregator
from .prices import PriceService
from .realtime import RealTimeReturnCalculator
from .regenerate import RebalanceRegenerator
from .screening import ScreeningEngine


class IndexServices:
    """Every index component, sharing one session, clock and cache."""

    def __init__(
        self,
        session: Session,
        source: QuoteDividendSource,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.session = session
        self.source = source
        self.settings = settings or load_settings()
        self.clock = clock or Clock()
        self.cache = cache or TTLCache(self.clock)
        self.hours = MarketHours(self.settings, self.clock)

        self.prices = PriceService(session, source, self.cache, self.settings)
        self.engine = IndexEngine(session, self.prices, self.settings, self.hours)
        self.screening = ScreeningEngine(session)
        self.composition = CompositionManager(session, self.prices)
        self.realtime = RealTimeReturnCalculator(
            session, self.prices, self.cache, self.hours, self.settings
        )
        self.performance = AssetPerformanceAggregator(session, self.prices, self.hours)
        self.regenerator = RebalanceRegenerator(
            session, self.engine, self.screening, self.composition
        )


def build_services(
    session: Session,
    source: Optional[QuoteDividendSource] = None,
    settings: Optional[EngineSettings] = None,
    clock: Optional[Clock] = None,
    cache: Optional[TTLCache] = None,
) -> IndexServices:
    """Build services, defaulting to the yfinance source."""
    settings = settings or load_settings()
    if source is None:
        from src.providers.yahoo.client import YFinanceQuoteSource

        source = YFinanceQuoteSource(ticker_suffix=settings.ticker_suffix)
    return IndexServices(session, source, settings, clock, cache)
