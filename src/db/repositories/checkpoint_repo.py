from typing import Optional
from sqlalchemy.orm import Session

from src.db.models.checkpoint import CronCheckpoint, GLOBAL_INDEX_KEY
from .base import BaseRepository


class CheckpointRepository(BaseRepository[CronCheckpoint]):
    """Cron checkpoints, upserted by (job_type, index_key)."""

    def __init__(self, session: Session):
        super().__init__(session, CronCheckpoint)

    def get_checkpoint(
        self, job_type: str, index_id: Optional[str] = None
    ) -> Optional[CronCheckpoint]:
        return self.session.get(CronCheckpoint, (job_type, index_id or GLOBAL_INDEX_KEY))

    def get_or_new(self, job_type: str, index_id: Optional[str] = None) -> CronCheckpoint:
        existing = self.get_checkpoint(job_type, index_id)
        if existing:
            return existing
        return CronCheckpoint(
            job_type=job_type,
            index_key=index_id or GLOBAL_INDEX_KEY,
            processed_count=0,
            total_count=0,
            errors=[],
        )

    def save(self, checkpoint: CronCheckpoint, commit: bool = True) -> CronCheckpoint:
        return self.merge(checkpoint, commit=commit)
