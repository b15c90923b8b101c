from pydantic import BaseModel, Field
from typing import List, Dict


class IngestionReport(BaseModel):
    """Track refresh progress and errors."""

    attempted: List[str] = Field(default_factory=list)
    successes: Dict[str, int] = Field(default_factory=dict)
    failures: Dict[str, str] = Field(default_factory=dict)

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def add_attempt(self, ticker: str) -> None:
        self.attempted.append(ticker)

    def add_success(self, ticker: str, bar_count: int) -> None:
        self.successes[ticker] = bar_count

    def add_failure(self, ticker: str, error: str) -> None:
        self.failures[ticker] = error
