import pytest

from src.db.models import CompositionEntry, HistoryPoint
from src.db.repositories.history_repo import HistoryRepository
from tests.conftest import DAY0, DAY1, DAY2


@pytest.fixture
def history(make_index, db_session):
    """A held throughout; B exits at DAY1's close and C enters then."""
    index = make_index({"A": 0.5, "B": 0.5}, DAY0, {"A": 10.0, "B": 20.0})
    b = db_session.query(CompositionEntry).filter_by(index_id=index.id, ticker="B").one()
    b.exit_date = DAY1
    b.exit_price = 22.0
    db_session.add(
        CompositionEntry(index_id=index.id, ticker="C", weight=0.5, entry_date=DAY1, entry_price=5.0)
    )
    db_session.commit()

    repo = HistoryRepository(db_session)
    repo.upsert(HistoryPoint(
        index_id=index.id, date=DAY0, point=100.0, daily_change=0.0,
        daily_contributions_by_ticker={},
        composition_snapshot={"A": {"weight": 0.5, "price": 10.0}, "B": {"weight": 0.5, "price": 20.0}},
    ))
    repo.upsert(HistoryPoint(
        index_id=index.id, date=DAY1, point=105.0, daily_change=5.0,
        daily_contributions_by_ticker={"A": 0.0, "B": 5.0},
        composition_snapshot={"A": {"weight": 0.5, "price": 10.0}, "B": {"weight": 0.5, "price": 22.0}},
    ))
    repo.upsert(HistoryPoint(
        index_id=index.id, date=DAY2, point=108.15, daily_change=3.0,
        daily_contributions_by_ticker={"A": 1.0, "C": 2.0},
        composition_snapshot={"A": {"weight": 0.4, "price": 10.2}, "C": {"weight": 0.6, "price": 5.2}},
    ))
    return index


def test_active_asset(services, history):
    perf = services.performance.calculate_asset_performance(history.id, "A")

    assert perf.status == "ACTIVE"
    assert perf.exit_date is None
    assert perf.entry_date == DAY0
    assert perf.contribution_to_index == pytest.approx(1.0)
    assert perf.average_weight == pytest.approx((0.5 + 0.5 + 0.4) / 3)
    assert perf.total_return == pytest.approx(2.0)  # 10.0 -> last snapshot 10.2
    assert perf.first_snapshot_date == DAY0
    assert perf.last_snapshot_date == DAY2
    # Clock sits on DAY2
    assert perf.days_in_index == 2


def test_exited_asset(services, history):
    perf = services.performance.calculate_asset_performance(history.id, "B")

    assert perf.status == "EXITED"
    assert perf.exit_date == DAY1
    assert perf.exit_price == 22.0
    assert perf.total_return == pytest.approx(10.0)
    assert perf.contribution_to_index == pytest.approx(5.0)
    assert perf.last_snapshot_date == DAY1
    assert len(perf.spans) == 1


def test_unknown_ticker(services, history):
    assert services.performance.calculate_asset_performance(history.id, "ZZZ") is None


def test_list_all_sorted_by_contribution(services, history):
    perfs = services.performance.list_all_assets_performance(history.id)
    assert [p.ticker for p in perfs] == ["B", "C", "A"]
    assert services.performance.list_all_assets_performance("missing") == []


def test_multiple_spans_compound(services, history, db_session):
    a = db_session.query(CompositionEntry).filter_by(index_id=history.id, ticker="A").one()
    a.exit_date = DAY1
    a.exit_price = 11.0
    db_session.add(
        CompositionEntry(index_id=history.id, ticker="A", weight=0.4, entry_date=DAY2, entry_price=10.0)
    )
    db_session.commit()

    perf = services.performance.calculate_asset_performance(history.id, "A")
    assert len(perf.spans) == 2
    assert perf.status == "ACTIVE"
    # +10% then +2%
    assert perf.total_return == pytest.approx((1.10 * 1.02 - 1) * 100)
