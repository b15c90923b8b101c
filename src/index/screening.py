"""ScreeningEngine - ranks the asset universe against an index methodology."""

import logging
from typing import Any, List, Optional

import pandas as pd
from sqlalchemy.orm import Session

from src.db.models.index import IndexDefinition
from src.db.repositories.ticker_repo import TickerRepository
from src.filters.config import build_filter
from .methodology import MethodologyConfig, validate_methodology
from .models import ScreeningCandidate, ScreeningDetails

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


class ScreeningEngine:
    """
    Rank candidate constituents for an index.

    Pure read + compute: nothing is written. An empty result means "no
    composition change", never "clear the index".
    """

    def __init__(self, session: Session):
        self.session = session
        self.ticker_repo = TickerRepository(session)
        self.last_details = ScreeningDetails()

    def run_screening(self, index_def: IndexDefinition) -> List[ScreeningCandidate]:
        """Screen the stored universe with the index's methodology."""
        methodology = validate_methodology(index_def.config)
        universe = self.ticker_repo.universe_frame(methodology.asset_types)
        logger.info(
            f"Screening index {index_def.ticker}: universe of {len(universe)} assets"
        )
        candidates = self.screen(universe, methodology)
        logger.info(f"Screening index {index_def.ticker}: {len(candidates)} selected")
        return candidates

    def screen(
        self, universe: pd.DataFrame, methodology: MethodologyConfig
    ) -> List[ScreeningCandidate]:
        """
        Filter, rank and select from a universe frame.

        Order of operations: every filter (AND), sort by the selection key
        with missing values last, sector caps in rank order, score bands,
        then top_n.
        """
        details = ScreeningDetails(universe_count=len(universe))
        self.last_details = details

        if universe.empty:
            logger.warning("Screening universe is empty")
            return []

        pipeline = build_filter(methodology)
        details.filter_steps = pipeline.summary(universe)["steps"]
        filtered = pipeline.apply(universe)
        details.filtered_count = len(filtered)
        if filtered.empty:
            return []

        selection = methodology.selection
        filtered = filtered.assign(
            _sort_key=pd.to_numeric(filtered[selection.order_by], errors="coerce")
        )
        ranked = filtered.sort_values(
            by=["_sort_key", "ticker"],
            ascending=[selection.order_direction == "asc", True],
            na_position="last",
            kind="mergesort",
        )
        details.candidates_before_selection = ranked["ticker"].tolist()

        rows = [row for _, row in ranked.iterrows()]
        rows = self._apply_sector_caps(rows, methodology, details)
        rows = self._apply_score_bands(rows, methodology, details)
        rows = rows[: selection.top_n]

        return [self._to_candidate(row, rank) for rank, row in enumerate(rows, start=1)]

    def _apply_sector_caps(
        self, rows: List[pd.Series], methodology: MethodologyConfig, details: ScreeningDetails
    ) -> List[pd.Series]:
        cap = methodology.diversification.max_count_per_sector
        if not cap:
            return rows

        kept, per_sector = [], {}
        for row in rows:
            sector = row.get("sector")
            key = sector if isinstance(sector, str) and sector else "__unknown__"
            if per_sector.get(key, 0) >= cap:
                details.removed_by_diversification.append(row["ticker"])
                continue
            per_sector[key] = per_sector.get(key, 0) + 1
            kept.append(row)
        return kept

    def _apply_score_bands(
        self, rows: List[pd.Series], methodology: MethodologyConfig, details: ScreeningDetails
    ) -> List[pd.Series]:
        bands = methodology.selection.score_bands
        if not bands:
            return rows

        counts = [0] * len(bands)
        kept = []
        for row in rows:
            score = _as_float(row.get("overall_score"))
            band_idx = None
            if score is not None:
                for i, band in enumerate(bands):
                    if band.min <= score < band.max:
                        band_idx = i
                        break
            if band_idx is not None:
                if counts[band_idx] >= bands[band_idx].max_count:
                    details.removed_by_score_bands.append(row["ticker"])
                    continue
                counts[band_idx] += 1
            kept.append(row)
        return kept

    def _to_candidate(self, row: pd.Series, rank: int) -> ScreeningCandidate:
        sector = row.get("sector")
        name = row.get("company_name")
        return ScreeningCandidate(
            ticker=row["ticker"],
            name=name if isinstance(name, str) else None,
            sector=sector if isinstance(sector, str) else None,
            current_price=_as_float(row.get("current_price")),
            upside=_as_float(row.get("upside")),
            overall_score=_as_float(row.get("overall_score")),
            market_cap=_as_float(row.get("market_cap")),
            dividend_yield=_as_float(row.get("dividend_yield")),
            rank=rank,
        )
