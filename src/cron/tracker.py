"""Checkpointed batch jobs: daily mark-to-market, then screening/rebalance."""

import logging
from datetime import date
from typing import Dict, List, Optional

from src.db.models.checkpoint import CronCheckpoint
from src.db.models.index import IndexDefinition
from src.db.repositories.checkpoint_repo import CheckpointRepository
from src.db.repositories.index_repo import IndexDefinitionRepository, CompositionRepository
from src.index.methodology import validate_methodology
from src.index.services import IndexServices
from .report import CronRunReport

logger = logging.getLogger(__name__)

MARK_TO_MARKET_JOB = "mark-to-market"
SCREENING_JOB = "screening"


class _Deadline:
    def __init__(self, clock, budget_seconds: float):
        self.clock = clock
        self.expires_at = clock.monotonic() + budget_seconds

    def expired(self) -> bool:
        return self.clock.monotonic() >= self.expires_at


class CronCheckpointTracker:
    """
    Advance every index under a wall-clock budget.

    Each job keeps a global checkpoint (which index it got to, and whether it
    finished for the current session) plus one checkpoint per index. When the
    budget runs out the job stops between days and the next invocation picks
    up from the next pending day; days are upserts, so re-entry is safe.
    """

    def __init__(self, services: IndexServices, time_budget_seconds: Optional[float] = None):
        self.services = services
        self.session = services.session
        self.engine = services.engine
        self.hours = services.hours
        self.budget = (
            time_budget_seconds
            if time_budget_seconds is not None
            else services.settings.cron_time_budget_seconds
        )
        self.checkpoints = CheckpointRepository(self.session)
        self.index_repo = IndexDefinitionRepository(self.session)
        self.composition_repo = CompositionRepository(self.session)

    def run(self) -> Dict[str, CronRunReport]:
        """Run both jobs under one shared budget."""
        deadline = _Deadline(self.services.clock, self.budget)
        reports = {MARK_TO_MARKET_JOB: self.run_mark_to_market(deadline)}
        if deadline.expired():
            reports[SCREENING_JOB] = CronRunReport(
                job_type=SCREENING_JOB, timed_out=True, message="No time left"
            )
        else:
            reports[SCREENING_JOB] = self.run_screening(deadline)
        return reports

    # ------------------------------------------------------------------
    # Checkpoint helpers
    # ------------------------------------------------------------------

    def _now(self):
        return self.hours.local_now().replace(tzinfo=None)

    def _start_job(self, job_type: str, session_date: date) -> CronCheckpoint:
        """Load the global checkpoint, resetting it if it belongs to another session."""
        checkpoint = self.checkpoints.get_or_new(job_type)
        if checkpoint.last_processed_date != session_date:
            if checkpoint.last_processed_date is not None:
                logger.info(f"{job_type}: new session {session_date}, resetting checkpoint")
            checkpoint.last_processed_date = session_date
            checkpoint.last_processed_index_id = None
            checkpoint.completed_at = None
            checkpoint.processed_count = 0
            checkpoint.errors = []
        return self.checkpoints.save(checkpoint)

    def _remaining(self, checkpoint: CronCheckpoint) -> List[IndexDefinition]:
        indices = self.index_repo.get_all_indices()
        checkpoint.total_count = len(indices)
        ids = [i.id for i in indices]
        if checkpoint.last_processed_index_id in ids:
            return indices[ids.index(checkpoint.last_processed_index_id) + 1 :]
        return indices

    def _finish_index(self, checkpoint: CronCheckpoint, index_def: IndexDefinition, errors):
        checkpoint.last_processed_index_id = index_def.id
        checkpoint.processed_count = (checkpoint.processed_count or 0) + 1
        if errors:
            # Reassign so the JSON column is flagged dirty
            checkpoint.errors = list(checkpoint.errors or []) + list(errors)
        self.checkpoints.save(checkpoint)

    def _save_index_checkpoint(
        self,
        job_type: str,
        index_id: str,
        processed: int,
        total: int,
        errors: List[str],
        last_date: Optional[date],
    ) -> None:
        checkpoint = self.checkpoints.get_or_new(job_type, index_id)
        checkpoint.processed_count = processed
        checkpoint.total_count = total
        checkpoint.errors = list(errors)
        if last_date is not None:
            checkpoint.last_processed_date = last_date
        checkpoint.completed_at = self._now()
        self.checkpoints.save(checkpoint)

    # ------------------------------------------------------------------
    # Mark-to-market
    # ------------------------------------------------------------------

    def run_mark_to_market(self, deadline: Optional[_Deadline] = None) -> CronRunReport:
        deadline = deadline or _Deadline(self.services.clock, self.budget)
        report = CronRunReport(job_type=MARK_TO_MARKET_JOB)
        target = self.hours.last_closed_session()

        checkpoint = self._start_job(MARK_TO_MARKET_JOB, target)
        if checkpoint.completed_at is not None:
            report.completed = True
            report.message = f"Already completed for {target}"
            logger.info(f"{MARK_TO_MARKET_JOB}: {report.message}")
            return report

        indices = self._remaining(checkpoint)
        report.total = len(indices)
        logger.info(f"{MARK_TO_MARKET_JOB}: {len(indices)} indices up to {target}")

        for index_def in indices:
            if deadline.expired():
                report.timed_out = True
                break
            finished = self._mark_index(checkpoint, index_def, target, deadline, report)
            if not finished:
                report.timed_out = True
                break

        if not report.timed_out:
            checkpoint.completed_at = self._now()
            report.completed = True
        self.checkpoints.save(checkpoint)

        logger.info(
            f"{MARK_TO_MARKET_JOB}: {report.succeeded} ok, {report.failed} failed, "
            f"{report.skipped} skipped, timed_out={report.timed_out}"
        )
        return report

    def _mark_index(
        self,
        checkpoint: CronCheckpoint,
        index_def: IndexDefinition,
        target: date,
        deadline: _Deadline,
        report: CronRunReport,
    ) -> bool:
        """Process pending days of one index. False if the budget ran out midway."""
        if not self.composition_repo.has_any(index_def.id):
            logger.info(f"{index_def.ticker}: no composition yet, skipping")
            report.skipped += 1
            self._finish_index(checkpoint, index_def, [])
            return True

        days = self.engine.pending_business_days(index_def.id, until=target)
        if not days:
            report.skipped += 1
            self._finish_index(checkpoint, index_def, [])
            return True

        stored = 0
        last_stored = None
        errors: List[str] = []
        failed = False
        for d in days:
            if deadline.expired():
                logger.warning(
                    f"{index_def.ticker}: time budget exhausted at {d}, "
                    f"{stored}/{len(days)} days done"
                )
                self._save_index_checkpoint(
                    MARK_TO_MARKET_JOB, index_def.id, stored, len(days), errors, last_stored
                )
                report.errors.extend(errors)
                return False
            try:
                if self.engine.update_index_points(index_def.id, d):
                    stored += 1
                    last_stored = d
                else:
                    logger.warning(f"{index_def.ticker}: no data for {d}, skipping day")
                    errors.append(f"{index_def.ticker} {d.isoformat()}: no data")
            except Exception as e:
                # Later days depend on this one; stop this index, move to the next
                self.session.rollback()
                logger.error(f"{index_def.ticker}: failed on {d}: {e}")
                errors.append(f"{index_def.ticker} {d.isoformat()}: {e}")
                failed = True
                break

        report.processed += 1
        if failed:
            report.failed += 1
        else:
            report.succeeded += 1
        report.errors.extend(errors)
        self._save_index_checkpoint(
            MARK_TO_MARKET_JOB, index_def.id, stored, len(days), errors, last_stored
        )
        self._finish_index(checkpoint, index_def, errors)
        return True

    # ------------------------------------------------------------------
    # Screening / rebalance
    # ------------------------------------------------------------------

    def run_screening(self, deadline: Optional[_Deadline] = None) -> CronRunReport:
        deadline = deadline or _Deadline(self.services.clock, self.budget)
        report = CronRunReport(job_type=SCREENING_JOB)
        today = self.hours.today()

        if not self.hours.has_closed_today():
            report.message = f"Session of {today} not closed, nothing to rebalance"
            logger.info(f"{SCREENING_JOB}: {report.message}")
            return report

        checkpoint = self._start_job(SCREENING_JOB, today)
        if checkpoint.completed_at is not None:
            report.completed = True
            report.message = f"Already completed for {today}"
            return report

        indices = self._remaining(checkpoint)
        report.total = len(indices)
        waiting = False

        for index_def in indices:
            if deadline.expired():
                report.timed_out = True
                break
            errors: List[str] = []
            try:
                outcome = self._screen_index(index_def, today)
            except Exception as e:
                self.session.rollback()
                logger.error(f"{index_def.ticker}: screening failed: {e}")
                errors.append(f"{index_def.ticker}: {e}")
                outcome = "failed"

            if outcome == "waiting":
                # Not marked as processed; retried on the next invocation
                waiting = True
                report.skipped += 1
                continue

            if outcome == "failed":
                report.processed += 1
                report.failed += 1
            elif outcome == "rebalanced":
                report.processed += 1
                report.succeeded += 1
            else:
                report.skipped += 1
            report.errors.extend(errors)
            self._save_index_checkpoint(SCREENING_JOB, index_def.id, 1, 1, errors, today)
            self._finish_index(checkpoint, index_def, errors)

        if waiting and not report.timed_out:
            # Start over next time so indices still waiting get another pass
            checkpoint.last_processed_index_id = None
        elif not report.timed_out:
            checkpoint.completed_at = self._now()
            report.completed = True
        self.checkpoints.save(checkpoint)

        logger.info(
            f"{SCREENING_JOB}: {report.succeeded} rebalanced, {report.failed} failed, "
            f"{report.skipped} skipped, timed_out={report.timed_out}"
        )
        return report

    def _screen_index(self, index_def: IndexDefinition, today: date) -> str:
        """Returns 'rebalanced', 'unchanged', 'waiting' or 'done'."""
        done = self.checkpoints.get_checkpoint(SCREENING_JOB, index_def.id)
        if done is not None and done.last_processed_date == today and not done.errors:
            return "done"

        has_composition = self.composition_repo.has_any(index_def.id)
        if has_composition and not self.engine.check_after_market_ran_today(index_def.id):
            logger.info(f"{index_def.ticker}: waiting for today's after-market point")
            return "waiting"

        candidates = self.services.screening.run_screening(index_def)
        if not candidates:
            logger.warning(f"{index_def.ticker}: screening returned no candidates")
            return "unchanged"

        methodology = validate_methodology(index_def.config)
        if has_composition and not self.services.composition.should_rebalance(
            index_def.id, candidates, methodology
        ):
            logger.info(f"{index_def.ticker}: composition unchanged")
            return "unchanged"

        self.services.composition.update_composition(index_def, candidates, today)
        if not has_composition:
            # First composition: the index starts at today's close
            self.engine.update_index_points(index_def.id, today, force=True)
        return "rebalanced"
