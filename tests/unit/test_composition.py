from unittest.mock import MagicMock

import pytest

from src.db.models import CompositionEntry, RebalanceLogEntry
from src.db.repositories.index_repo import CompositionRepository, RebalanceLogRepository
from src.index.composition import (
    CompositionManager,
    compare_composition,
    generate_rebalance_reason,
)
from src.index.methodology import validate_methodology
from src.index.models import RebalanceAction, ScreeningCandidate
from tests.conftest import DAY0, DAY1, DAY2


def cand(ticker, rank=1, upside=None, price=None, score=None):
    return ScreeningCandidate(
        ticker=ticker, rank=rank, upside=upside, current_price=price, overall_score=score
    )


def test_compare_composition():
    changes = compare_composition(["A", "B"], [cand("B", 1), cand("C", 2, upside=25.0)])

    assert [(c.action, c.ticker) for c in changes] == [("ENTRY", "C"), ("EXIT", "A")]
    assert "upside 25.0%" in changes[0].reason


def test_generate_rebalance_reason():
    changes = compare_composition(["A"], [cand("B"), cand("C", 2)])
    assert generate_rebalance_reason(changes) == "Rebalance with 2 entries: B, C; 1 exit: A"
    assert generate_rebalance_reason([]) == "No composition changes"


def test_initial_composition(services, make_index, source, db_session):
    source.set_close("A", DAY0, 10.0)
    index = make_index({})
    manager = services.composition

    result = manager.update_composition(index, [cand("A", 1), cand("B", 2, price=7.5)], DAY0)

    assert result.success
    assert result.entries == ["A", "B"]
    assert result.exits == []
    open_entries = CompositionRepository(db_session).get_open_entries(index.id)
    assert [(e.ticker, e.weight, e.entry_price) for e in open_entries] == [
        ("A", 0.5, 10.0),
        ("B", 0.5, 7.5),  # no close on DAY0, falls back to the screened price
    ]
    log = RebalanceLogRepository(db_session).list_entries(index.id)
    assert [(r.action, r.ticker) for r in log] == [("ENTRY", "A"), ("ENTRY", "B")]


def test_rebalance_closes_and_opens_spans(services, make_index, source, db_session):
    source.set_close("A", DAY2, 11.0)
    source.set_close("C", DAY2, 30.0)
    index = make_index({"A": 0.5, "B": 0.5}, DAY0)

    result = services.composition.update_composition(index, [cand("B", 1), cand("C", 2)], DAY2)

    assert result.entries == ["C"]
    assert result.exits == ["A"]
    repo = CompositionRepository(db_session)
    a_span = repo.get_entries_for_ticker(index.id, "A")[0]
    assert a_span.exit_date == DAY2
    assert a_span.exit_price == 11.0
    assert [e.ticker for e in repo.get_open_entries(index.id)] == ["B", "C"]
    assert sum(e.weight for e in repo.get_open_entries(index.id)) == pytest.approx(1.0)

    # A is still held for DAY2's return; C only from the next day
    assert [e.ticker for e in repo.get_holdings_for_returns(index.id, DAY2)] == ["A", "B"]
    assert [e.ticker for e in repo.get_active_at_close(index.id, DAY2)] == ["B", "C"]


def test_empty_candidates_leave_composition_alone(services, make_index, db_session):
    index = make_index({"A": 1.0})
    result = services.composition.update_composition(index, [], DAY1)

    assert not result.success
    assert [e.ticker for e in CompositionRepository(db_session).get_open_entries(index.id)] == ["A"]
    assert db_session.query(RebalanceLogEntry).count() == 0


def test_rebalance_is_all_or_nothing(services, make_index, db_session):
    index = make_index({"A": 0.5, "B": 0.5})
    prices = MagicMock()

    def close(ticker, d, skip_cache=False):
        if ticker == "D":
            raise RuntimeError("price store unavailable")
        return 10.0

    prices.get_close.side_effect = close
    manager = CompositionManager(db_session, prices)

    with pytest.raises(RuntimeError):
        manager.update_composition(index, [cand("C", 1), cand("D", 2)], DAY1)

    entries = db_session.query(CompositionEntry).filter_by(index_id=index.id).all()
    assert sorted(e.ticker for e in entries) == ["A", "B"]
    assert all(e.exit_date is None for e in entries)
    assert db_session.query(RebalanceLogEntry).count() == 0


def test_should_rebalance(services, make_index, add_tickers):
    add_tickers(
        [
            {"ticker": "A", "upside": 10.0},
            {"ticker": "B", "upside": 30.0},
        ]
    )
    index = make_index({"A": 0.5, "B": 0.5})
    methodology = validate_methodology(index.config)
    manager = services.composition

    assert manager.should_rebalance(index.id, [cand("A"), cand("C")], methodology)
    assert not manager.should_rebalance(index.id, [], methodology)
    # Same names: rebalance only if the best upside beats the worst holding by > 5 points
    assert manager.should_rebalance(index.id, [cand("B", upside=30.0), cand("A", 2)], methodology)
    assert not manager.should_rebalance(index.id, [cand("B", upside=14.0), cand("A", 2)], methodology)


def test_change_action_values():
    changes = compare_composition([], [cand("A")])
    assert changes[0].action == RebalanceAction.ENTRY.value
