"""Pydantic models for the Index module."""

from enum import Enum
from typing import Dict, List, Optional
import datetime as dt
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field


class WeightingScheme(str, Enum):
    """Available index weighting schemes."""

    EQUAL = "equal"
    MARKET_CAP = "market_cap"
    OVERALL_SCORE = "overall_score"
    CUSTOM = "custom"


class RebalanceAction(str, Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"


class ScreeningCandidate(BaseModel):
    """One asset that passed screening, in rank order."""

    ticker: str
    name: Optional[str] = None
    sector: Optional[str] = None
    current_price: Optional[float] = None
    upside: Optional[float] = None
    overall_score: Optional[float] = None
    market_cap: Optional[float] = None
    dividend_yield: Optional[float] = None
    rank: int = 0


class ScreeningDetails(BaseModel):
    """Diagnostics from the last screening run."""

    universe_count: int = 0
    filtered_count: int = 0
    candidates_before_selection: List[str] = Field(default_factory=list)
    removed_by_diversification: List[str] = Field(default_factory=list)
    removed_by_score_bands: List[str] = Field(default_factory=list)
    filter_steps: List[dict] = Field(default_factory=list)


class CompositionChange(BaseModel):
    action: RebalanceAction
    ticker: str
    reason: str

    model_config = ConfigDict(use_enum_values=True)


class CompositionUpdateResult(BaseModel):
    success: bool
    index_id: str
    rebalance_date: Optional[date] = None
    entries: List[str] = Field(default_factory=list)
    exits: List[str] = Field(default_factory=list)
    reweighted: List[str] = Field(default_factory=list)
    weights: Dict[str, float] = Field(default_factory=dict)
    message: str = ""


class ConsistencyCheck(BaseModel):
    """Attribution check of a history point."""

    is_valid: bool
    difference: float = Field(
        description="|sum(contributions) - daily_change| in percent points"
    )
    tolerance: float


class DailyReturn(BaseModel):
    """Outcome of marking an index to market for one day (not yet persisted)."""

    index_id: str
    date: dt.date
    point: float
    previous_point: float
    daily_change: float = Field(description="Percent")
    contributions: Dict[str, float] = Field(
        default_factory=dict, description="Ticker -> percent points"
    )
    dividends_by_ticker: Dict[str, float] = Field(default_factory=dict)
    dividends_received: float = 0.0
    composition_snapshot: Dict[str, dict] = Field(default_factory=dict)
    current_yield: Optional[float] = None
    missing_tickers: List[str] = Field(default_factory=list)
    is_inception: bool = False
    consistency: Optional[ConsistencyCheck] = None


class RecalculatedPoint(BaseModel):
    date: dt.date
    old_points: float
    new_points: float


class RecalculationResult(BaseModel):
    success: bool
    recalculated: int = 0
    dividends_found: int = 0
    new_points: List[RecalculatedPoint] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    dry_run: bool = False


class RegenerationResult(BaseModel):
    success: bool
    message: str = ""
    recalculated_days: int = 0
    errors: List[str] = Field(default_factory=list)


class PendingDividend(BaseModel):
    ticker: str
    ex_date: date
    amount: float


class PendingDividendsResult(BaseModel):
    has_pending: bool = False
    pending_dividends: List[PendingDividend] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class RealTimeReturn(BaseModel):
    """Intraday estimate of the index level."""

    real_time_points: float
    real_time_return: float = Field(description="Percent since base value")
    daily_change: float = Field(description="Percent since last official close")
    last_official_points: float
    last_official_date: date
    is_market_open: bool
    last_available_daily_change: Optional[float] = None
    has_closing_price: bool = False
    priced_tickers: int = 0
    computed_at: Optional[datetime] = None
    from_cache: bool = False


class HoldingSpan(BaseModel):
    """One entry -> exit (or entry -> present) stay of a ticker."""

    entry_date: date
    exit_date: Optional[date] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    days_in_index: int = 0
    total_return: Optional[float] = Field(default=None, description="Percent")


class AssetPerformance(BaseModel):
    ticker: str
    entry_date: date
    exit_date: Optional[date] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    days_in_index: int = 0
    total_return: Optional[float] = Field(default=None, description="Percent")
    contribution_to_index: float = Field(
        default=0.0, description="Sum of daily contributions, percent points"
    )
    average_weight: float = 0.0
    status: str = "ACTIVE"  # ACTIVE | EXITED
    first_snapshot_date: Optional[date] = None
    last_snapshot_date: Optional[date] = None
    spans: List[HoldingSpan] = Field(default_factory=list)


class LastSnapshot(BaseModel):
    date: dt.date
    snapshot: Dict[str, dict]
    constituent_count: int
