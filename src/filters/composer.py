from typing import List, Optional, Tuple
import pandas as pd
from .predicates import FilterPredicate


class DatasetFilter:
    """
    Named chain of filter predicates combined with AND logic.

    Every step carries a label so a screening run can report how many
    candidates each rule removed.
    """

    def __init__(self, steps: Optional[List[Tuple[str, FilterPredicate]]] = None):
        self.steps: List[Tuple[str, FilterPredicate]] = list(steps or [])

    def add(self, predicate: FilterPredicate, name: Optional[str] = None) -> "DatasetFilter":
        """Append a predicate. Returns self for chaining."""
        label = name or getattr(predicate, "__name__", repr(predicate))
        self.steps.append((label, predicate))
        return self

    def __len__(self) -> int:
        return len(self.steps)

    def mask(self, df: pd.DataFrame) -> pd.Series:
        result = pd.Series(True, index=df.index)
        for _, predicate in self.steps:
            result &= predicate(df).reindex(df.index, fill_value=False)
        return result

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """Return the rows passing every step."""
        if df.empty or not self.steps:
            return df.copy()
        return df[self.mask(df)].copy()

    def summary(self, df: pd.DataFrame) -> dict:
        """Per-step survivor counts, without filtering."""
        remaining = pd.Series(True, index=df.index)
        steps = []
        for name, predicate in self.steps:
            before = int(remaining.sum())
            remaining &= predicate(df).reindex(df.index, fill_value=False)
            after = int(remaining.sum())
            steps.append({"step": name, "remaining": after, "dropped": before - after})

        return {
            "original_count": len(df),
            "final_count": int(remaining.sum()),
            "total_dropped": len(df) - int(remaining.sum()),
            "steps": steps,
        }
