"""Cron checkpoint model."""

from sqlalchemy import Column, String, Date, DateTime, Integer, JSON, func
from .base import Base

GLOBAL_INDEX_KEY = "__GLOBAL__"


class CronCheckpoint(Base):
    """
    Resumable progress of a batch job.

    One row per (job_type, index_key); index_key is the index id, or
    GLOBAL_INDEX_KEY for the job-wide marker. Rows are overwritten on each run.
    """

    __tablename__ = "cron_checkpoints"

    job_type = Column(String(50), primary_key=True)  # 'mark-to-market' | 'screening'
    index_key = Column(String(64), primary_key=True)
    last_processed_index_id = Column(String(36))
    last_processed_date = Column(Date)
    processed_count = Column(Integer, default=0)
    total_count = Column(Integer, default=0)
    errors = Column(JSON)
    completed_at = Column(DateTime, nullable=True)

    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
