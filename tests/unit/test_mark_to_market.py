from datetime import date

import pytest

from src.db.models import HistoryPoint, Ticker
from src.db.repositories.history_repo import HistoryRepository
from src.db.repositories.index_repo import CompositionRepository
from src.errors import InvalidInputError
from src.index.engine import IndexEngine, check_consistency
from src.index.models import ScreeningCandidate
from tests.conftest import DAY0, DAY1, DAY2, DAY3


@pytest.fixture
def two_stock_index(make_index, source):
    """{A: 0.5, B: 0.5} entered at DAY0's close; A +2%, B -4% on DAY1."""
    source.set_close("A", DAY0, 10.0)
    source.set_close("B", DAY0, 20.0)
    source.set_close("A", DAY1, 10.2)
    source.set_close("B", DAY1, 19.2)
    source.set_close("A", DAY2, 10.2)
    source.set_close("B", DAY2, 19.2)
    return make_index({"A": 0.5, "B": 0.5}, DAY0, {"A": 10.0, "B": 20.0})


def points(db_session, index_id):
    return HistoryRepository(db_session).list_points(index_id)


def test_first_day_is_inception_at_base_value(services, two_stock_index, db_session):
    assert services.engine.update_index_points(two_stock_index.id, DAY0)

    p = HistoryRepository(db_session).get_point(two_stock_index.id, DAY0)
    assert p.point == 100.0
    assert p.daily_change == 0.0
    assert p.daily_contributions_by_ticker == {}
    assert p.composition_snapshot["A"] == {
        "weight": 0.5,
        "price": 10.0,
        "entry_price": 10.0,
        "entry_date": "2024-03-04",
    }


def test_basic_mark_to_market(services, two_stock_index, db_session):
    engine = services.engine
    engine.update_index_points(two_stock_index.id, DAY0)
    assert engine.update_index_points(two_stock_index.id, DAY1)

    p = HistoryRepository(db_session).get_point(two_stock_index.id, DAY1)
    assert p.daily_change == pytest.approx(-1.0)
    assert p.point == pytest.approx(99.0)
    assert p.daily_contributions_by_ticker == pytest.approx({"A": 1.0, "B": -2.0})
    assert p.is_consistent
    assert p.composition_snapshot["B"]["price"] == 19.2


def test_dividend_adds_yield(services, two_stock_index, source, db_session):
    # 0.20 on a 20.00 previous close is 1% on half the index
    source.add_dividend("B", DAY1, 0.20)
    engine = services.engine
    engine.update_index_points(two_stock_index.id, DAY0)
    engine.update_index_points(two_stock_index.id, DAY1)

    p = HistoryRepository(db_session).get_point(two_stock_index.id, DAY1)
    assert p.daily_contributions_by_ticker["B"] == pytest.approx(-1.5)
    assert p.daily_change == pytest.approx(-0.5)
    assert p.point == pytest.approx(99.5)
    assert p.dividends_by_ticker == {"B": 0.20}
    assert p.dividends_received == pytest.approx(0.20)


def test_recalculate_picks_up_late_dividend(services, two_stock_index, source, db_session):
    engine = services.engine
    for d in (DAY0, DAY1, DAY2):
        engine.update_index_points(two_stock_index.id, d)
    assert HistoryRepository(db_session).get_point(two_stock_index.id, DAY1).point == pytest.approx(99.0)

    # Dividend announced after DAY1 was processed; calendar is still cached
    source.add_dividend("B", DAY1, 0.20)
    result = engine.recalculate_index_with_dividends(two_stock_index.id)

    assert result.success
    assert result.recalculated == 3
    assert result.dividends_found == 1
    repo = HistoryRepository(db_session)
    assert repo.get_point(two_stock_index.id, DAY0).point == 100.0
    assert repo.get_point(two_stock_index.id, DAY1).point == pytest.approx(99.5)
    # Flat DAY2 carries the corrected level forward
    assert repo.get_point(two_stock_index.id, DAY2).point == pytest.approx(99.5)
    assert repo.get_point(two_stock_index.id, DAY2).dividends_received == pytest.approx(0.20)


def test_dry_run_counts_match_real_run(services, two_stock_index, source, db_session):
    engine = services.engine
    for d in (DAY0, DAY1, DAY2):
        engine.update_index_points(two_stock_index.id, d)
    source.add_dividend("B", DAY1, 0.20)

    dry = engine.recalculate_index_with_dividends(two_stock_index.id, start_date="2024-03-05", dry_run=True)
    assert dry.dry_run
    assert HistoryRepository(db_session).get_point(two_stock_index.id, DAY1).point == pytest.approx(99.0)

    real = engine.recalculate_index_with_dividends(two_stock_index.id, start_date="2024-03-05")
    assert dry.recalculated == real.recalculated == 2
    assert dry.dividends_found == real.dividends_found == 1


def test_recalculate_without_points(services, two_stock_index):
    result = services.engine.recalculate_index_with_dividends(two_stock_index.id)
    assert not result.success
    assert result.errors == ["No historical points found for index"]


def test_recalculate_rejects_bad_start_date(services, two_stock_index):
    with pytest.raises(InvalidInputError):
        services.engine.recalculate_index_with_dividends(two_stock_index.id, start_date="05/03/2024")


def test_update_is_idempotent(services, two_stock_index, db_session):
    engine = services.engine
    engine.update_index_points(two_stock_index.id, DAY0)
    engine.update_index_points(two_stock_index.id, DAY1)
    first = HistoryRepository(db_session).get_point(two_stock_index.id, DAY1)
    snapshot = (first.point, first.daily_change, dict(first.daily_contributions_by_ticker))

    assert engine.update_index_points(two_stock_index.id, DAY1)
    assert engine.update_index_points(two_stock_index.id, DAY1, force=True)

    rows = db_session.query(HistoryPoint).filter_by(index_id=two_stock_index.id, date=DAY1).all()
    assert len(rows) == 1
    assert (rows[0].point, rows[0].daily_change, rows[0].daily_contributions_by_ticker) == snapshot


def test_invariants_hold_over_a_run(services, two_stock_index, source, db_session):
    source.set_close("A", DAY3, 9.7)
    source.set_close("B", DAY3, 19.9)
    source.add_dividend("A", DAY3, 0.1)
    for d in (DAY0, DAY1, DAY2, DAY3):
        services.engine.update_index_points(two_stock_index.id, d)

    history = points(db_session, two_stock_index.id)
    assert len(history) == 4
    for prev, cur in zip(history, history[1:]):
        assert cur.point == pytest.approx(prev.point * (1 + cur.daily_change / 100))
        assert abs(sum(cur.daily_contributions_by_ticker.values()) - cur.daily_change) < 0.01


def test_weekend_and_bad_dates(services, two_stock_index):
    engine = services.engine
    assert engine.update_index_points(two_stock_index.id, date(2024, 3, 9)) is False
    assert engine.update_index_points("no-such-index", DAY1) is False
    with pytest.raises(InvalidInputError) as exc:
        engine.update_index_points(two_stock_index.id, "2024-02-30")
    assert exc.value.raw_input == "2024-02-30"


def test_missing_ticker_is_skipped(services, two_stock_index, source, db_session):
    del source.closes["B"][DAY1]
    engine = services.engine
    engine.update_index_points(two_stock_index.id, DAY0)

    daily = engine.calculate_daily_return(two_stock_index.id, DAY1)
    assert daily.missing_tickers == ["B"]
    assert daily.contributions == pytest.approx({"A": 1.0})


def test_day_with_no_prices_is_not_written(services, two_stock_index, db_session):
    engine = services.engine
    engine.update_index_points(two_stock_index.id, DAY0)
    # Nothing priced on DAY3
    assert engine.update_index_points(two_stock_index.id, DAY3) is False
    assert HistoryRepository(db_session).get_point(two_stock_index.id, DAY3) is None


def test_suspicious_previous_close_replaced_by_entry_price(services, make_index, source, db_session):
    # Bad quote on DAY0 (10x the real price) right after entry
    source.set_close("A", DAY0, 100.0)
    source.set_close("A", DAY1, 10.1)
    index = make_index({"A": 1.0}, DAY0, {"A": 10.0})
    services.engine.update_index_points(index.id, DAY0)
    services.engine.update_index_points(index.id, DAY1)

    p = HistoryRepository(db_session).get_point(index.id, DAY1)
    assert p.daily_change == pytest.approx(1.0)


def test_fix_index_starting_point(services, two_stock_index, db_session):
    repo = HistoryRepository(db_session)
    engine = services.engine
    assert engine.fix_index_starting_point(two_stock_index.id) is False

    repo.upsert(HistoryPoint(index_id=two_stock_index.id, date=DAY1, point=101.3, daily_change=1.3))
    assert engine.fix_index_starting_point(two_stock_index.id) is True

    first = repo.get_first(two_stock_index.id)
    assert first.date == DAY0
    assert first.point == 100.0
    assert first.is_virtual
    assert engine.fix_index_starting_point(two_stock_index.id) is False


def test_consistency_is_flagged_not_enforced(services, two_stock_index):
    check = check_consistency({"A": 1.0, "B": -2.0}, -0.98, tolerance=0.01)
    assert not check.is_valid
    assert check.difference == pytest.approx(0.02)

    strict = IndexEngine(
        services.session, services.prices, services.settings, services.hours, tolerance=0.5
    )
    assert strict.tolerance == 0.5


def test_current_yield_is_weighted(services, two_stock_index, db_session):
    db_session.add_all([Ticker(ticker="A", dividend_yield=0.10), Ticker(ticker="B", dividend_yield=0.04)])
    db_session.commit()
    assert services.engine.calculate_current_yield(two_stock_index.id) == pytest.approx(7.0)


def test_fill_missing_history_and_last_snapshot(services, two_stock_index, source, clock, db_session):
    # Clock is Wednesday DAY2 19:00, so DAY0..DAY2 are pending
    filled = services.engine.fill_missing_history(two_stock_index.id)
    assert filled == 3
    assert services.engine.pending_business_days(two_stock_index.id) == []
    assert services.engine.check_after_market_ran_today(two_stock_index.id)

    last = services.engine.get_last_snapshot(two_stock_index.id)
    assert last.date == DAY2
    assert last.constituent_count == 2


def test_pending_dividends(services, two_stock_index, source):
    engine = services.engine
    for d in (DAY0, DAY1):
        engine.update_index_points(two_stock_index.id, d)
    assert not engine.check_pending_dividends(two_stock_index.id).has_pending

    source.add_dividend("A", DAY2, 0.3)
    services.prices.invalidate_dividends()
    result = engine.check_pending_dividends(two_stock_index.id)
    assert result.has_pending
    assert [(p.ticker, p.ex_date, p.amount) for p in result.pending_dividends] == [("A", DAY2, 0.3)]


def test_rebalance_does_not_rewrite_earlier_days(services, two_stock_index, source, db_session):
    engine = services.engine
    index_id = two_stock_index.id
    source.set_close("C", DAY1, 5.0)
    source.set_close("C", DAY2, 5.5)
    for d in (DAY0, DAY1):
        engine.update_index_points(index_id, d)

    candidates = [ScreeningCandidate(ticker=t, rank=n) for n, t in enumerate("ABC", 1)]
    result = services.composition.update_composition(two_stock_index, candidates, DAY1)
    assert result.entries == ["C"]
    assert result.reweighted == ["A", "B"]
    engine.update_index_points(index_id, DAY2)

    recalc = engine.recalculate_index_with_dividends(index_id)
    assert recalc.success

    repo = HistoryRepository(db_session)
    day1 = repo.get_point(index_id, DAY1)
    assert day1.point == pytest.approx(99.0)
    assert day1.daily_contributions_by_ticker == pytest.approx({"A": 1.0, "B": -2.0})
    # New weights apply from the day after the rebalance: C +10% on a third
    day2 = repo.get_point(index_id, DAY2)
    assert day2.daily_contributions_by_ticker == pytest.approx({"A": 0.0, "B": 0.0, "C": 10.0 / 3})
    assert day2.point == pytest.approx(99.0 * (1 + 10.0 / 3 / 100))

    spans = CompositionRepository(db_session).get_entries_for_ticker(index_id, "A")
    assert [(s.entry_date, s.exit_date, s.weight) for s in spans] == [
        (DAY0, DAY1, 0.5),
        (DAY1, None, pytest.approx(1 / 3)),
    ]


def test_recalculate_after_fixing_starting_point(services, two_stock_index, make_index, db_session):
    # Entered at DAY1's close, first point stored off the base value
    index = make_index({"A": 0.5, "B": 0.5}, DAY1, {"A": 10.2, "B": 19.2}, ticker="LATE11")
    repo = HistoryRepository(db_session)
    repo.upsert(HistoryPoint(index_id=index.id, date=DAY1, point=101.0, daily_change=1.0))
    engine = services.engine
    assert engine.fix_index_starting_point(index.id)

    result = engine.recalculate_index_with_dividends(index.id)

    assert result.success, result.errors
    assert result.recalculated == 1
    anchor, first = points(db_session, index.id)
    assert (anchor.date, anchor.point, anchor.is_virtual) == (DAY0, 100.0, True)
    # Rolled forward from the anchor: A +2%, B -4%
    assert first.daily_change == pytest.approx(-1.0)
    assert first.point == pytest.approx(anchor.point * (1 + first.daily_change / 100))
    assert engine.update_index_points(index.id, DAY2)


def test_dividend_on_unlisted_holiday_lands_on_next_session(services, two_stock_index, source, db_session):
    del source.closes["A"][DAY1]
    del source.closes["B"][DAY1]
    source.add_dividend("B", DAY1, 0.20)
    engine = services.engine
    engine.update_index_points(two_stock_index.id, DAY0)
    assert not engine.update_index_points(two_stock_index.id, DAY1)
    assert engine.update_index_points(two_stock_index.id, DAY2)

    p = HistoryRepository(db_session).get_point(two_stock_index.id, DAY2)
    assert p.dividends_by_ticker == {"B": 0.20}
    # A +2% on half; B -4% price +1% dividend on the other half
    assert p.daily_contributions_by_ticker == pytest.approx({"A": 1.0, "B": -1.5})
    assert not engine.check_pending_dividends(two_stock_index.id).has_pending
