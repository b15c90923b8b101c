import pytest

from src.errors import InvalidInputError
from src.index.methodology import (
    MaxRatioFilter,
    RangeFilter,
    SectorFilter,
    validate_methodology,
)
from src.index.models import WeightingScheme


def test_valid_methodology_parses_tagged_filters():
    raw = {
        "filters": [
            {"kind": "maxRatio", "field": "pe", "value": 10},
            {"kind": "range", "field": "dividend_yield", "gte": 0.04},
            {"kind": "sector", "exclude": ["Financials"]},
        ],
        "weights": {"scheme": "overall_score", "min_weight": 0.05, "max_weight": 0.2},
    }
    m = validate_methodology(raw)

    assert isinstance(m.filters[0], MaxRatioFilter)
    assert isinstance(m.filters[1], RangeFilter)
    assert isinstance(m.filters[2], SectorFilter)
    assert m.weights.scheme == WeightingScheme.OVERALL_SCORE
    assert m.selection.top_n == 10
    assert m.asset_types == ["STOCK"]


def test_weighting_scheme_is_required():
    raw = {"filters": []}
    with pytest.raises(InvalidInputError) as exc:
        validate_methodology(raw)
    assert "weights" in str(exc.value)
    assert exc.value.raw_input is raw


@pytest.mark.parametrize(
    "bad_filter",
    [
        {"kind": "maxRatio", "field": "not_a_metric", "value": 1},
        {"kind": "minScore", "value": 150},
        {"kind": "range", "field": "pe"},
        {"kind": "range", "field": "pe", "gte": 10, "lte": 5},
        {"kind": "sector"},
        {"kind": "whatever", "value": 1},
    ],
)
def test_bad_filters_rejected(bad_filter):
    raw = {"filters": [bad_filter], "weights": {"scheme": "equal"}}
    with pytest.raises(InvalidInputError):
        validate_methodology(raw)


def test_custom_scheme_needs_weights():
    with pytest.raises(InvalidInputError):
        validate_methodology({"weights": {"scheme": "custom"}})


def test_non_object_rejected():
    with pytest.raises(InvalidInputError) as exc:
        validate_methodology("equal")
    assert exc.value.raw_input == "equal"


def test_create_index_validates_before_writing(db_session):
    from datetime import date
    from src.db.models import IndexDefinition
    from src.db.repositories.index_repo import IndexDefinitionRepository

    repo = IndexDefinitionRepository(db_session)
    with pytest.raises(InvalidInputError):
        repo.create_index("BAD11", "Bad", {"filters": [{"kind": "minScore"}]}, date(2024, 3, 4))
    assert db_session.query(IndexDefinition).count() == 0

    created = repo.create_index("GOOD11", "Good", {"weights": {"scheme": "equal"}}, date(2024, 3, 4))
    assert created.config["weights"]["scheme"] == "equal"
    with pytest.raises(InvalidInputError):
        repo.create_index("GOOD11", "Again", {"weights": {"scheme": "equal"}}, date(2024, 3, 4))
