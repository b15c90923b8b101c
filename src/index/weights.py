"""Weighting scheme implementations for index composition."""

from typing import Dict, List, Sequence
import numpy as np

from .methodology import WeightsConfig
from .models import ScreeningCandidate, WeightingScheme


def compute_equal_weights(tickers: Sequence[str]) -> Dict[str, float]:
    """
    Compute equal weights for all tickers.

    Each ticker gets weight = 1/N.
    """
    n = len(tickers)
    if n == 0:
        return {}
    weight = 1.0 / n
    return {ticker: weight for ticker in tickers}


def compute_market_cap_weights(
    candidates: List[ScreeningCandidate],
) -> Dict[str, float]:
    """
    Compute market-cap-weighted weights.

    Weight = market_cap_i / sum(market_cap).
    Larger companies have more influence on the index.
    """
    total_mcap = sum(c.market_cap for c in candidates if c.market_cap and c.market_cap > 0)

    if total_mcap == 0:
        # Fallback to equal weight if no market cap data
        return compute_equal_weights([c.ticker for c in candidates])

    weights = {}
    for c in candidates:
        mcap = c.market_cap if c.market_cap and c.market_cap > 0 else 0.0
        weights[c.ticker] = mcap / total_mcap

    return weights


def compute_score_weights(
    candidates: List[ScreeningCandidate],
    min_weight: float = 0.02,
    max_weight: float = 0.15,
) -> Dict[str, float]:
    """
    Compute overall-score-proportional weights.

    Scored candidates get a share of their slice (n_scored / N) proportional
    to their score, clamped to [min_weight, max_weight]. Unscored candidates
    split whatever is left, then everything is renormalized to 1.0.
    """
    if not candidates:
        return {}

    scored = [c for c in candidates if c.overall_score and c.overall_score > 0]
    scored_tickers = {c.ticker for c in scored}
    unscored = [c for c in candidates if c.ticker not in scored_tickers]
    if not scored:
        return compute_equal_weights([c.ticker for c in candidates])

    scores = np.array([c.overall_score for c in scored], dtype=float)
    scored_share = len(scored) / len(candidates)
    raw = scores / scores.sum() * scored_share
    clamped = np.clip(raw, min_weight, max_weight)

    weights = {c.ticker: float(w) for c, w in zip(scored, clamped)}
    if unscored:
        remainder = max(0.0, 1.0 - float(clamped.sum()))
        if remainder == 0.0:
            remainder = min_weight * len(unscored)
        for c in unscored:
            weights[c.ticker] = remainder / len(unscored)

    return _renormalize(weights)


def normalize_custom_weights(
    custom_weights: Dict[str, float], tickers: Sequence[str]
) -> Dict[str, float]:
    """
    Apply configured weights to the selected tickers, normalized to sum to 1.0.

    Tickers missing from the map share the unassigned remainder equally.

    Args:
        custom_weights: User-provided weights (don't need to sum to 1)
        tickers: The tickers actually selected

    Returns:
        Normalized weights summing to 1.0
    """
    if not tickers:
        return {}

    assigned = {t: custom_weights[t] for t in tickers if t in custom_weights}
    unlisted = [t for t in tickers if t not in custom_weights]

    weights = dict(assigned)
    if unlisted:
        remainder = max(0.0, 1.0 - sum(assigned.values()))
        if remainder == 0.0:
            # Nothing left to hand out; fall back to an equal share
            remainder = len(unlisted) / len(tickers)
        for t in unlisted:
            weights[t] = remainder / len(unlisted)

    if sum(weights.values()) == 0:
        return compute_equal_weights(list(tickers))
    return _renormalize(weights)


def compute_weights(
    candidates: List[ScreeningCandidate], config: WeightsConfig
) -> Dict[str, float]:
    """Weights for the selected candidates under the methodology's scheme."""
    scheme = WeightingScheme(config.scheme)
    tickers = [c.ticker for c in candidates]

    if scheme == WeightingScheme.EQUAL:
        return compute_equal_weights(tickers)
    elif scheme == WeightingScheme.MARKET_CAP:
        return compute_market_cap_weights(candidates)
    elif scheme == WeightingScheme.OVERALL_SCORE:
        return compute_score_weights(candidates, config.min_weight, config.max_weight)
    elif scheme == WeightingScheme.CUSTOM:
        return normalize_custom_weights(config.custom_weights, tickers)
    else:
        raise ValueError(f"Unknown weighting scheme: {scheme}")


def _renormalize(weights: Dict[str, float]) -> Dict[str, float]:
    total = sum(weights.values())
    if total == 0:
        return weights
    return {ticker: w / total for ticker, w in weights.items()}
