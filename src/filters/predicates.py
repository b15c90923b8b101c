from fnmatch import fnmatchcase
from typing import Callable, Iterable, Optional
import pandas as pd

# Type alias for filter functions
FilterPredicate = Callable[[pd.DataFrame], pd.Series]

# A missing metric never passes a threshold: NaN comparisons are False and
# absent columns yield an all-False mask.


def _column(df: pd.DataFrame, field: str) -> Optional[pd.Series]:
    if field not in df.columns:
        return None
    return pd.to_numeric(df[field], errors="coerce")


def min_value(field: str, threshold: float) -> FilterPredicate:
    """Keep rows with field >= threshold."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        col = _column(df, field)
        if col is None:
            return pd.Series(False, index=df.index)
        return col.notna() & (col >= threshold)
    predicate.__name__ = f"min_{field}"
    return predicate


def max_value(field: str, threshold: float) -> FilterPredicate:
    """Keep rows with field <= threshold."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        col = _column(df, field)
        if col is None:
            return pd.Series(False, index=df.index)
        return col.notna() & (col <= threshold)
    predicate.__name__ = f"max_{field}"
    return predicate


def value_range(field: str, gte: Optional[float] = None, lte: Optional[float] = None) -> FilterPredicate:
    """Keep rows with gte <= field <= lte (either bound optional)."""
    def predicate(df: pd.DataFrame) -> pd.Series:
        col = _column(df, field)
        if col is None:
            return pd.Series(False, index=df.index)
        mask = col.notna()
        if gte is not None:
            mask &= col >= gte
        if lte is not None:
            mask &= col <= lte
        return mask
    predicate.__name__ = f"range_{field}"
    return predicate


def sector_filter(sectors: Iterable[str]) -> FilterPredicate:
    """Filter to specific sectors."""
    allowed = list(sectors)
    def predicate(df: pd.DataFrame) -> pd.Series:
        return df["sector"].isin(allowed)
    return predicate


def exclude_sectors(sectors: Iterable[str]) -> FilterPredicate:
    """Drop specific sectors. Rows without a sector are kept."""
    blocked = list(sectors)
    def predicate(df: pd.DataFrame) -> pd.Series:
        return ~df["sector"].isin(blocked)
    return predicate


def asset_type_filter(asset_types: Iterable[str]) -> FilterPredicate:
    allowed = [a.upper() for a in asset_types]
    def predicate(df: pd.DataFrame) -> pd.Series:
        return df["asset_type"].fillna("").str.upper().isin(allowed)
    return predicate


def matches_ticker_pattern(ticker: str, pattern: str) -> bool:
    """
    Glob-style ticker match: `*5` matches a suffix, `PET*` a prefix,
    anything without a wildcard must match exactly.
    """
    return fnmatchcase(ticker.upper(), pattern.upper())


def exclude_tickers(tickers: Iterable[str] = (), patterns: Iterable[str] = ()) -> FilterPredicate:
    """Drop listed tickers and tickers matching any glob pattern."""
    blocked = {t.upper() for t in tickers}
    globs = list(patterns)
    def predicate(df: pd.DataFrame) -> pd.Series:
        def keep(ticker: str) -> bool:
            if ticker.upper() in blocked:
                return False
            return not any(matches_ticker_pattern(ticker, p) for p in globs)
        return df["ticker"].astype(str).map(keep).astype(bool)
    return predicate
