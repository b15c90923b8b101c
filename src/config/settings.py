"""Engine-wide settings."""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Set

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Maximum |sum(contributions) - daily_change| in percent points before a
# history point is flagged as inconsistent.
DEFAULT_CONTRIBUTION_TOLERANCE = 0.01


class EngineSettings(BaseModel):
    """Tunables for the index engine."""

    # Exchange session
    timezone: str = "America/Sao_Paulo"
    market_open_hour: int = Field(default=10, ge=0, le=23)
    market_close_hour: int = Field(default=18, ge=1, le=24)
    holidays: Set[str] = Field(
        default_factory=set, description="Exchange holidays as YYYY-MM-DD"
    )

    # Mark-to-market
    contribution_tolerance: float = DEFAULT_CONTRIBUTION_TOLERANCE
    suspicious_return_threshold: float = 0.5
    suspicious_entry_window_days: int = 7
    suspicious_entry_price_gap: float = 0.3

    # Caches
    realtime_open_ttl_seconds: int = 60
    realtime_closed_ttl_seconds: int = 86400
    dividend_calendar_ttl_seconds: int = 3600

    # Batch jobs
    cron_time_budget_seconds: float = 50.0
    batch_size: int = Field(default=5, ge=1)
    batch_delay_seconds: float = 1.0

    # Quote source
    ticker_suffix: str = ".SA"


def _load_holidays(path: Path) -> Set[str]:
    """Load holidays from a JSON file shaped {"holidays": [...]}."""
    if not path.exists():
        logger.warning(f"Holidays file {path} not found, using weekends only")
        return set()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return set(data.get("holidays") or [])


def load_settings(env: Optional[dict] = None) -> EngineSettings:
    """
    Build settings from defaults overlaid with INDEX_ENGINE_* variables.

    Args:
        env: Mapping to read from (default: os.environ)

    Returns:
        EngineSettings instance
    """
    env = os.environ if env is None else env
    overrides = {}

    for name in EngineSettings.model_fields:
        if name == "holidays":
            continue
        key = f"INDEX_ENGINE_{name.upper()}"
        if key in env:
            overrides[name] = env[key]

    holidays_file = env.get("INDEX_ENGINE_HOLIDAYS_FILE")
    if holidays_file:
        overrides["holidays"] = _load_holidays(Path(holidays_file))

    return EngineSettings(**overrides)
