"""
Methodology configuration for an index.

Filters are a closed, tagged set of variants discriminated by `kind`, so a
config is fully validated when the index is created instead of failing
half-way through a screening run.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from src.errors import InvalidInputError
from .models import WeightingScheme

# Numeric universe columns a filter or sort key may reference
MetricField = Literal[
    "current_price",
    "upside",
    "overall_score",
    "dividend_yield",
    "market_cap",
    "average_daily_volume",
    "technical_margin",
    "roe",
    "net_margin",
    "net_debt_ebitda",
    "payout",
    "pe",
    "pb",
]


class MinScoreFilter(BaseModel):
    kind: Literal["minScore"]
    value: float = Field(ge=0, le=100)


class MaxRatioFilter(BaseModel):
    kind: Literal["maxRatio"]
    field: MetricField
    value: float


class MinRatioFilter(BaseModel):
    kind: Literal["minRatio"]
    field: MetricField
    value: float


class RangeFilter(BaseModel):
    kind: Literal["range"]
    field: MetricField
    gte: Optional[float] = None
    lte: Optional[float] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.gte is None and self.lte is None:
            raise ValueError("range filter needs at least one of gte/lte")
        if self.gte is not None and self.lte is not None and self.gte > self.lte:
            raise ValueError(f"range filter has gte {self.gte} > lte {self.lte}")
        return self


class MinLiquidityFilter(BaseModel):
    kind: Literal["minLiquidity"]
    value: float = Field(ge=0, description="Minimum average daily volume")


class MinUpsideFilter(BaseModel):
    kind: Literal["minUpside"]
    value: float = Field(description="Percent")


class SectorFilter(BaseModel):
    kind: Literal["sector"]
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_lists(self):
        if not self.include and not self.exclude:
            raise ValueError("sector filter needs include or exclude")
        overlap = set(self.include) & set(self.exclude)
        if overlap:
            raise ValueError(f"sectors both included and excluded: {sorted(overlap)}")
        return self


FilterSpec = Annotated[
    Union[
        MinScoreFilter,
        MaxRatioFilter,
        MinRatioFilter,
        RangeFilter,
        MinLiquidityFilter,
        MinUpsideFilter,
        SectorFilter,
    ],
    Field(discriminator="kind"),
]


class ScoreBand(BaseModel):
    """At most max_count picks with min <= overall_score < max."""

    min: float
    max: float
    max_count: int = Field(ge=0)

    @model_validator(mode="after")
    def check_band(self):
        if self.min >= self.max:
            raise ValueError(f"score band min {self.min} must be < max {self.max}")
        return self


class SelectionConfig(BaseModel):
    top_n: int = Field(default=10, ge=1)
    order_by: MetricField = "upside"
    order_direction: Literal["asc", "desc"] = "desc"
    score_bands: List[ScoreBand] = Field(default_factory=list)


class WeightsConfig(BaseModel):
    scheme: WeightingScheme
    min_weight: float = Field(default=0.02, ge=0, le=1)
    max_weight: float = Field(default=0.15, gt=0, le=1)
    custom_weights: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_weights(self):
        if self.min_weight > self.max_weight:
            raise ValueError(
                f"min_weight {self.min_weight} > max_weight {self.max_weight}"
            )
        if self.scheme == WeightingScheme.CUSTOM and not self.custom_weights:
            raise ValueError("custom scheme requires custom_weights")
        if any(w < 0 for w in self.custom_weights.values()):
            raise ValueError("custom weights must be non-negative")
        return self


class RebalanceConfig(BaseModel):
    threshold: float = Field(
        default=0.05, ge=0, description="Upside edge (fraction) that forces a swap"
    )


class DiversificationConfig(BaseModel):
    max_count_per_sector: Optional[int] = Field(default=None, ge=1)


class MethodologyConfig(BaseModel):
    """Screening + weighting rules of one index."""

    asset_types: List[str] = Field(default_factory=lambda: ["STOCK"])
    excluded_tickers: List[str] = Field(default_factory=list)
    excluded_ticker_patterns: List[str] = Field(default_factory=list)
    filters: List[FilterSpec] = Field(default_factory=list)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    weights: WeightsConfig
    rebalance: RebalanceConfig = Field(default_factory=RebalanceConfig)
    diversification: DiversificationConfig = Field(
        default_factory=DiversificationConfig
    )


def validate_methodology(raw: Any) -> MethodologyConfig:
    """
    Validate a raw methodology payload.

    Raises:
        InvalidInputError: With the raw payload attached, if anything is off
    """
    if isinstance(raw, MethodologyConfig):
        return raw
    if not isinstance(raw, dict):
        raise InvalidInputError("Methodology config must be an object", raw_input=raw)
    try:
        return MethodologyConfig.model_validate(raw)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidInputError(
            f"Invalid methodology config: {problems}", raw_input=raw
        ) from e
