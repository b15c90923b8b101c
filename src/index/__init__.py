"""Index module - screening, composition and daily mark-to-market of synthetic indices."""

from .models import WeightingScheme, DailyReturn, RealTimeReturn

__all__ = ["WeightingScheme", "DailyReturn", "RealTimeReturn"]
