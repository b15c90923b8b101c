"""Translate a validated methodology into a DatasetFilter."""

from src.errors import InvalidInputError
from src.index.methodology import (
    MethodologyConfig,
    MinScoreFilter,
    MaxRatioFilter,
    MinRatioFilter,
    RangeFilter,
    MinLiquidityFilter,
    MinUpsideFilter,
    SectorFilter,
)
from .predicates import (
    min_value,
    max_value,
    value_range,
    sector_filter,
    exclude_sectors,
    asset_type_filter,
    exclude_tickers,
)
from .composer import DatasetFilter


def build_filter(methodology: MethodologyConfig) -> DatasetFilter:
    """Build the AND-chain of every rule in the methodology."""
    pipeline = DatasetFilter()

    if methodology.asset_types:
        pipeline.add(asset_type_filter(methodology.asset_types), "asset_types")
    if methodology.excluded_tickers or methodology.excluded_ticker_patterns:
        pipeline.add(
            exclude_tickers(
                methodology.excluded_tickers, methodology.excluded_ticker_patterns
            ),
            "excluded_tickers",
        )

    for spec in methodology.filters:
        if isinstance(spec, MinScoreFilter):
            pipeline.add(min_value("overall_score", spec.value), f"minScore({spec.value})")
        elif isinstance(spec, MaxRatioFilter):
            pipeline.add(max_value(spec.field, spec.value), f"maxRatio({spec.field}<={spec.value})")
        elif isinstance(spec, MinRatioFilter):
            pipeline.add(min_value(spec.field, spec.value), f"minRatio({spec.field}>={spec.value})")
        elif isinstance(spec, RangeFilter):
            pipeline.add(
                value_range(spec.field, spec.gte, spec.lte),
                f"range({spec.field} in [{spec.gte}, {spec.lte}])",
            )
        elif isinstance(spec, MinLiquidityFilter):
            pipeline.add(
                min_value("average_daily_volume", spec.value), f"minLiquidity({spec.value})"
            )
        elif isinstance(spec, MinUpsideFilter):
            pipeline.add(min_value("upside", spec.value), f"minUpside({spec.value})")
        elif isinstance(spec, SectorFilter):
            if spec.include:
                pipeline.add(sector_filter(spec.include), f"sector(include={spec.include})")
            if spec.exclude:
                pipeline.add(exclude_sectors(spec.exclude), f"sector(exclude={spec.exclude})")
        else:
            raise InvalidInputError(f"Unsupported filter {spec!r}", raw_input=spec)

    return pipeline
