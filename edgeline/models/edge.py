"""
Model-vs-market edge for moneyline, spread and total quotes.

Moneyline and spread probabilities come from one PredictedMargin per event,
so the two views of the same game are built from the same numbers. Spread
cover uses a bounded logistic curve:

    p = clamp(0.5 + 0.5 * tanh((margin + point) / std_dev), 0.1, 0.9)

where `point` is the book's handicap for the side (so the margin needed to
cover is -point).
"""

from dataclasses import dataclass
from typing import Optional
import logging
import math

from edgeline.constants import SportProfile
from edgeline.models.calibration import PASSTHROUGH, RecalibrationParams, apply_platt_scaling
from edgeline.models.types import (
    BetCandidate,
    MarketQuote,
    MarketType,
    ModelPrediction,
    Side,
    ValueTier,
)
from edgeline.utils.odds import (
    calculate_edge,
    decimal_to_american,
    decimal_to_implied_prob,
    expected_value_pct,
    kelly_criterion,
)

logger = logging.getLogger(__name__)

MIN_EDGE = 0.02
COVER_FLOOR = 0.1
COVER_CEILING = 0.9

# Value tier bands: (edge, expected value %)
HIGH_VALUE_EDGE = 0.10
HIGH_VALUE_EV = 20.0
MEDIUM_VALUE_EDGE = 0.03
MEDIUM_VALUE_EV = 5.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _bounded_probability(advantage: float, std_dev: float) -> float:
    return _clamp(0.5 + 0.5 * math.tanh(advantage / std_dev), COVER_FLOOR, COVER_CEILING)


@dataclass(frozen=True)
class PredictedMargin:
    """
    Home-perspective predicted margin shared by every side calculation.

    home_margin is positive when the home team is expected to win.
    win_probability carries the (recalibrated) model win probability for
    the home side.
    """
    home_margin: float
    std_dev: float
    home_win_probability: float
    total: Optional[float] = None
    total_std_dev: Optional[float] = None

    @classmethod
    def from_prediction(
        cls,
        prediction: ModelPrediction,
        profile: SportProfile,
        params: RecalibrationParams = PASSTHROUGH,
    ) -> "PredictedMargin":
        margin = cls(
            home_margin=prediction.predicted_spread,
            std_dev=profile.spread_std_dev,
            home_win_probability=apply_platt_scaling(prediction.home_win_probability, params),
            total=prediction.predicted_total,
            total_std_dev=profile.total_std_dev,
        )
        if margin.views_disagree:
            logger.warning(
                f"Prediction {prediction.event_id}: win probability "
                f"{margin.home_win_probability:.3f} and margin {margin.home_margin:+.1f} "
                "favor different sides"
            )
        return margin

    @property
    def views_disagree(self) -> bool:
        """True when the win probability and the margin favor different sides."""
        return bool(self.home_margin) and (self.home_win_probability - 0.5) * self.home_margin < 0

    @property
    def margin_favorite(self) -> Optional[Side]:
        if not self.home_margin:
            return None
        return Side.HOME if self.home_margin > 0 else Side.AWAY

    def contradicts_margin(self, market: MarketType, side: Side) -> bool:
        """Moneyline side against the margin favorite while the two views disagree."""
        return market == MarketType.MONEYLINE and self.views_disagree and side != self.margin_favorite

    def margin_for(self, side: Side) -> float:
        if side == Side.HOME:
            return self.home_margin
        if side == Side.AWAY:
            return -self.home_margin
        raise ValueError(f"{side} is not a team side")

    def win_probability(self, side: Side) -> float:
        """Model probability that a side wins outright."""
        if side == Side.HOME:
            return self.home_win_probability
        if side == Side.AWAY:
            return 1 - self.home_win_probability
        raise ValueError(f"{side} is not a team side")

    def cover_probability(self, side: Side, point: float) -> float:
        """Probability a side covers the handicap `point` (e.g. -3.5 for a favorite)."""
        return _bounded_probability(self.margin_for(side) + point, self.std_dev)

    def margin_win_probability(self, side: Side) -> float:
        """Outright win probability implied by the margin alone (cover at 0)."""
        return self.cover_probability(side, 0.0)

    def over_probability(self, line: float) -> float:
        if self.total is None or not self.total_std_dev:
            raise ValueError("Predicted total unavailable")
        return _bounded_probability(self.total - line, self.total_std_dev)

    def probability_for(self, market: MarketType, side: Side, point: Optional[float]) -> float:
        if market == MarketType.MONEYLINE:
            return self.win_probability(side)
        if point is None:
            raise ValueError(f"{market.value} quote requires a point")
        if market == MarketType.SPREAD:
            return self.cover_probability(side, point)
        over = self.over_probability(point)
        return over if side == Side.OVER else 1 - over


def calculate_bet_confidence(edge: float, prediction_confidence: float) -> int:
    """Blend edge size (40%) with the model's own confidence (60%)."""
    edge_score = min(edge * 200, 100)
    return int(round(edge_score * 0.4 + prediction_confidence * 0.6))


def value_tier(edge: float, expected_value: float) -> ValueTier:
    if edge > HIGH_VALUE_EDGE or expected_value > HIGH_VALUE_EV:
        return ValueTier.HIGH
    if edge > MEDIUM_VALUE_EDGE or expected_value > MEDIUM_VALUE_EV:
        return ValueTier.MEDIUM
    return ValueTier.LOW


def _rationale(quote: MarketQuote, model_prob: float, implied: float, edge: float,
               margin: PredictedMargin) -> str:
    if quote.market == MarketType.MONEYLINE:
        detail = f"model gives {quote.label} a {model_prob:.1%} win chance"
    elif quote.market == MarketType.SPREAD:
        detail = (
            f"projected margin {margin.margin_for(quote.side):+.1f} vs line {quote.point:+g} "
            f"gives a {model_prob:.1%} cover chance"
        )
    else:
        detail = (
            f"projected total {margin.total:.1f} vs {quote.point:g} "
            f"gives {quote.side.value} a {model_prob:.1%} chance"
        )
    return f"{detail}; market implies {implied:.1%} ({edge:+.1%} edge)"


def build_candidate(
    quote: MarketQuote,
    margin: PredictedMargin,
    prediction_confidence: float,
    min_edge: float = MIN_EDGE,
) -> Optional[BetCandidate]:
    """
    Price one quote against the model.

    Raises InvalidOddsError for unusable prices; returns None when the edge
    does not clear `min_edge`.
    """
    american = decimal_to_american(quote.price)
    implied = decimal_to_implied_prob(quote.price)
    model_prob = margin.probability_for(quote.market, quote.side, quote.point)
    edge = calculate_edge(model_prob, implied)
    if edge <= min_edge:
        return None

    ev = expected_value_pct(model_prob, implied)
    return BetCandidate(
        event_id=quote.event_id,
        market=quote.market,
        side=quote.side,
        label=quote.label or quote.side.value,
        bookmaker=quote.bookmaker,
        decimal_odds=quote.price,
        american_odds=american,
        implied_probability=implied,
        model_probability=model_prob,
        edge=edge,
        expected_value=ev,
        confidence=calculate_bet_confidence(edge, prediction_confidence),
        value_tier=value_tier(edge, ev),
        rationale=_rationale(quote, model_prob, implied, edge, margin),
        point=quote.point,
        kelly_fraction=kelly_criterion(model_prob, quote.price),
    )
