from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.config.settings import EngineSettings
from src.db.models import Base, CompositionEntry, IndexDefinition, Ticker
from src.index.services import IndexServices
from src.market.clock import Clock
from src.providers.base import DividendEvent, HistoricalPrice, LiveQuote, QuoteDividendSource

SAO_PAULO = ZoneInfo("America/Sao_Paulo")

# Mon 2024-03-04 .. Fri 2024-03-08
DAY0 = date(2024, 3, 4)
DAY1 = date(2024, 3, 5)
DAY2 = date(2024, 3, 6)
DAY3 = date(2024, 3, 7)

EQUAL_METHODOLOGY = {
    "weights": {"scheme": "equal"},
    "selection": {"top_n": 2, "order_by": "upside", "order_direction": "desc"},
}


class FakeClock(Clock):
    """Clock frozen at a local time; advance() moves wall and monotonic time together."""

    def __init__(self, local: datetime):
        self.current = local
        self._monotonic = 1000.0

    def now(self, tz=None) -> datetime:
        return self.current.astimezone(tz) if tz else self.current

    def monotonic(self) -> float:
        return self._monotonic

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self._monotonic += seconds

    def set_local(self, local: datetime) -> None:
        self.current = local


class FakeQuoteSource(QuoteDividendSource):
    """In-memory quotes: closes[ticker][date], live[ticker], dividends[ticker]."""

    def __init__(self):
        self.closes: Dict[str, Dict[date, float]] = {}
        self.live: Dict[str, float] = {}
        self.dividends: Dict[str, List[DividendEvent]] = {}
        self.history_calls: List[str] = []
        self.dividend_calls: List[str] = []
        self.fail_for = set()

    def set_close(self, ticker: str, d: date, price: float) -> None:
        self.closes.setdefault(ticker, {})[d] = price

    def add_dividend(self, ticker: str, ex_date: date, amount: float) -> None:
        self.dividends.setdefault(ticker, []).append(
            DividendEvent(ticker=ticker, ex_date=ex_date, amount=amount)
        )

    def fetch_historical_prices(self, ticker, start_date, end_date, interval="1d"):
        self.history_calls.append(ticker)
        if ticker in self.fail_for:
            raise ConnectionError(f"source down for {ticker}")
        return [
            HistoricalPrice(trade_date=d, close=p)
            for d, p in sorted(self.closes.get(ticker, {}).items())
            if start_date <= d <= end_date
        ]

    def fetch_live_quote(self, ticker) -> Optional[LiveQuote]:
        if ticker not in self.live:
            return None
        return LiveQuote(ticker=ticker, price=self.live[ticker])

    def fetch_dividend_calendar(self, ticker):
        self.dividend_calls.append(ticker)
        return list(self.dividends.get(ticker, []))


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def settings():
    return EngineSettings(timezone="America/Sao_Paulo", market_open_hour=10, market_close_hour=18)


@pytest.fixture
def clock():
    # Wednesday of the test week, after the close
    return FakeClock(datetime(2024, 3, 6, 19, 0, tzinfo=SAO_PAULO))


@pytest.fixture
def source():
    return FakeQuoteSource()


@pytest.fixture
def services(db_session, source, settings, clock):
    return IndexServices(db_session, source, settings=settings, clock=clock)


@pytest.fixture
def make_index(db_session):
    """Create an index holding `weights` from `entry_date`'s close."""

    def _make(
        weights: Dict[str, float],
        entry_date: date = DAY0,
        entry_prices: Optional[Dict[str, float]] = None,
        ticker: str = "TEST11",
        config: Optional[dict] = None,
    ) -> IndexDefinition:
        index = IndexDefinition(
            ticker=ticker,
            name=f"{ticker} index",
            config=config or EQUAL_METHODOLOGY,
            base_value=100.0,
            inception_date=entry_date,
        )
        db_session.add(index)
        db_session.flush()
        for t, w in weights.items():
            db_session.add(
                CompositionEntry(
                    index_id=index.id,
                    ticker=t,
                    weight=w,
                    entry_date=entry_date,
                    entry_price=(entry_prices or {}).get(t),
                )
            )
        db_session.commit()
        return index

    return _make


@pytest.fixture
def add_tickers(db_session):
    def _add(rows: List[dict]) -> None:
        for row in rows:
            db_session.merge(Ticker(**row))
        db_session.commit()

    return _add
