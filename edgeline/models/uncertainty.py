"""Confidence weighting from the width of a prediction's simulated interval."""

from typing import Optional

from edgeline.constants import CIThresholds, SportProfile
from edgeline.models.types import MarketType, ModelPrediction

MIN_MULTIPLIER = 0.4


def uncertainty_multiplier(ci_width: Optional[float], thresholds: CIThresholds) -> float:
    """
    Scale factor for confidence given an 80% interval width.

    1.0 at or below the acceptable width, 0.4 at or above the filter width,
    linear in between. A missing width means no penalty.
    """
    if ci_width is None:
        return 1.0
    if ci_width <= thresholds.acceptable:
        return 1.0
    if ci_width >= thresholds.filter:
        return MIN_MULTIPLIER
    span = thresholds.filter - thresholds.acceptable
    fraction = (ci_width - thresholds.acceptable) / span
    return 1.0 - fraction * (1.0 - MIN_MULTIPLIER)


def thresholds_for(market: MarketType, profile: SportProfile) -> CIThresholds:
    # Moneyline rides on the same margin distribution as the spread
    return profile.total_ci if market == MarketType.TOTAL else profile.spread_ci


def prediction_multiplier(
    prediction: ModelPrediction,
    market: MarketType,
    profile: SportProfile,
) -> float:
    """Multiplier for a market; point-estimate predictions always get 1.0."""
    return uncertainty_multiplier(prediction.ci_width(market), thresholds_for(market, profile))


def apply_uncertainty(confidence: float, multiplier: float) -> int:
    return int(round(confidence * multiplier))
