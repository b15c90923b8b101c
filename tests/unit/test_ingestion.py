import pytest

from src.db.repositories.price_repo import PriceRepository
from src.db.repositories.ticker_repo import TickerRepository
from src.ingestion.config import IngestionConfig
from src.ingestion.service import PriceIngestionService
from src.providers.batching import chunked, fetch_in_batches
from tests.conftest import DAY0, DAY1, DAY2


class FlakySource:
    """Wraps a fake source, failing the first `n` calls for a ticker."""

    def __init__(self, inner, ticker, n):
        self.inner = inner
        self.ticker = ticker
        self.remaining = n

    def fetch_historical_prices(self, ticker, start_date, end_date, interval="1d"):
        if ticker == self.ticker and self.remaining > 0:
            self.remaining -= 1
            raise TimeoutError("read timed out")
        return self.inner.fetch_historical_prices(ticker, start_date, end_date, interval)


@pytest.fixture
def sleeps():
    return []


def make_service(db_session, source, sleeps, **config):
    return PriceIngestionService(
        source,
        PriceRepository(db_session),
        TickerRepository(db_session),
        config=IngestionConfig(**config),
        sleep=sleeps.append,
    )


def test_chunked():
    assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_fetch_in_batches_pauses_between_batches_only():
    sleeps = []

    def fn(item):
        if item == "bad":
            raise ValueError("boom")
        return item.upper()

    results, failures = fetch_in_batches(
        ["a", "bad", "c", "d"], fn, batch_size=2, delay_seconds=0.5, sleep=sleeps.append
    )

    assert results == {"a": "A", "c": "C", "d": "D"}
    assert failures == {"bad": "boom"}
    assert sleeps == [0.5]


def test_refresh_prices_stores_bars(db_session, source, sleeps):
    for d, p in ((DAY0, 10.0), (DAY1, 10.5), (DAY2, 11.0)):
        source.set_close("A", d, p)
    source.set_close("B", DAY2, 20.0)
    service = make_service(db_session, source, sleeps, batch_size=1, batch_delay=2.0)

    report = service.refresh_prices(["A", "B"], start=DAY0, end=DAY2, show_progress=False)

    assert report.successes == {"A": 3, "B": 1}
    assert report.failure_count == 0
    assert report.attempted == ["A", "B"]
    assert sleeps == [2.0]
    assert PriceRepository(db_session).get_price("A", DAY1).close_price == 10.5


def test_failures_are_reported_not_raised(db_session, source, sleeps):
    source.set_close("A", DAY0, 10.0)
    source.fail_for.add("BAD")
    service = make_service(db_session, source, sleeps, retry_count=2, retry_delay=0.25)

    report = service.refresh_prices(["A", "BAD", "EMPTY"], start=DAY0, end=DAY2, show_progress=False)

    assert report.successes == {"A": 1}
    assert "source down" in report.failures["BAD"]
    assert report.failures["EMPTY"] == "No price data returned"
    # One retry for BAD, single batch so no batch pause
    assert sleeps == [0.25]
    assert source.history_calls.count("BAD") == 2


def test_transient_error_is_retried(db_session, source, sleeps):
    source.set_close("A", DAY0, 10.0)
    flaky = FlakySource(source, "A", 2)
    service = make_service(db_session, flaky, sleeps, retry_count=3, retry_delay=1.0)

    report = service.refresh_prices(["A"], start=DAY0, end=DAY0, show_progress=False)

    assert report.successes == {"A": 1}
    assert sleeps == [1.0, 1.0]


def test_universe_includes_constituents(db_session, source, sleeps, add_tickers, make_index):
    add_tickers([{"ticker": "A"}, {"ticker": "C"}])
    make_index({"A": 0.5, "B": 0.5})
    service = make_service(db_session, source, sleeps)

    assert service.universe_tickers() == ["A", "B", "C"]
