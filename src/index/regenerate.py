"""Re-run a past rebalance day, optionally re-screening."""

import logging
from typing import List

from sqlalchemy.orm import Session

from src.db.repositories.history_repo import HistoryRepository
from src.db.repositories.index_repo import (
    IndexDefinitionRepository,
    CompositionRepository,
    RebalanceLogRepository,
)
from src.market.calendar import DateLike, parse_iso_date
from .composition import CompositionManager
from .engine import IndexEngine
from .models import RegenerationResult
from .screening import ScreeningEngine

logger = logging.getLogger(__name__)


class RebalanceRegenerator:
    """
    Patch history for a past date.

    With skip_screening the day's point is recomputed from fresh prices and
    nothing else changes. Without it, composition changes made on or after
    the date are undone, the index is re-screened and rebalanced at the date,
    and every later point is recomputed.
    """

    def __init__(
        self,
        session: Session,
        engine: IndexEngine,
        screening: ScreeningEngine,
        composition: CompositionManager,
    ):
        self.session = session
        self.engine = engine
        self.screening = screening
        self.composition = composition
        self.index_repo = IndexDefinitionRepository(session)
        self.composition_repo = CompositionRepository(session)
        self.log_repo = RebalanceLogRepository(session)
        self.history_repo = HistoryRepository(session)

    def regenerate_rebalance_for_date(
        self, index_id: str, d: DateLike, skip_screening: bool = False
    ) -> RegenerationResult:
        """
        Raises:
            InvalidInputError: If d is not a valid date (nothing is changed)
        """
        d = parse_iso_date(d)
        index_def = self.index_repo.get_index(index_id)
        if index_def is None:
            return RegenerationResult(success=False, message=f"Index {index_id} not found")
        if not self.engine.hours.is_trading_day(d):
            return RegenerationResult(success=False, message=f"{d} is not a business day")

        if skip_screening:
            ok = self.engine.update_index_points(index_id, d, force=True, skip_cache=True)
            if not ok:
                return RegenerationResult(
                    success=False,
                    message=f"Could not recompute {d}",
                    errors=[f"Failed to calculate return for {d.isoformat()}"],
                )
            return RegenerationResult(
                success=True, message=f"Recomputed {d} without rebalancing", recalculated_days=1
            )

        prior = self.history_repo.get_last_before(index_id, d)
        later_days = [
            p.date
            for p in self.history_repo.list_points(index_id, start=d)
            if not p.is_virtual and p.date > d
        ]

        try:
            touched = self.composition_repo.restore_before(index_id, d)
            removed_logs = self.log_repo.delete_from(index_id, d)
            if prior is None:
                self.history_repo.delete_from(index_id, d)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"Restored composition of {index_def.ticker} before {d}: "
            f"{touched} spans, {removed_logs} log rows"
        )

        errors: List[str] = []
        recalculated = 0

        if prior is not None and self.engine.update_index_points(index_id, d, force=True):
            recalculated += 1

        candidates = self.screening.run_screening(index_def)
        if candidates:
            result = self.composition.update_composition(index_def, candidates, d)
            message = result.message
        else:
            message = "No candidates from screening; composition left as before the date"
            logger.warning(f"{index_def.ticker}: {message}")

        if prior is None:
            if self.engine.update_index_points(index_id, d, force=True):
                recalculated += 1
            else:
                errors.append(f"Failed to calculate return for {d.isoformat()}")
            recalculated += self.engine.fill_missing_history(index_id)
        else:
            for day in later_days:
                if self.engine.update_index_points(index_id, day, force=True):
                    recalculated += 1
                else:
                    errors.append(f"Failed to calculate return for {day.isoformat()}")

        return RegenerationResult(
            success=not errors,
            message=message,
            recalculated_days=recalculated,
            errors=errors,
        )
