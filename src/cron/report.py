from typing import List

from pydantic import BaseModel, Field


class CronRunReport(BaseModel):
    """Outcome of one cron job invocation."""

    job_type: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    total: int = 0
    errors: List[str] = Field(default_factory=list)
    timed_out: bool = False
    completed: bool = False
    message: str = ""

    def add_error(self, message: str) -> None:
        self.errors.append(message)
