"""Core data types shared across the engine."""

from dataclasses import dataclass, field, asdict
from enum import Enum
import math
from typing import Dict, List, Optional, Tuple, Union

from edgeline.exceptions import SchemaValidationError
from edgeline.utils.odds import decimal_to_american, decimal_to_implied_prob


class MarketType(str, Enum):
    MONEYLINE = "moneyline"
    SPREAD = "spread"
    TOTAL = "total"

    @classmethod
    def from_key(cls, key: str) -> "MarketType":
        """Accept Odds API market keys (h2h, spreads, totals) or plain names."""
        resolved = _MARKET_KEYS.get((key or "").strip().lower())
        if resolved is None:
            raise ValueError(f"Unknown market key: {key}")
        return resolved

    @property
    def two_sided(self) -> bool:
        """Markets where one team is the favorite (moneyline, spread)."""
        return self in (MarketType.MONEYLINE, MarketType.SPREAD)


_MARKET_KEYS: Dict[str, MarketType] = {
    "h2h": MarketType.MONEYLINE,
    "moneyline": MarketType.MONEYLINE,
    "spreads": MarketType.SPREAD,
    "spread": MarketType.SPREAD,
    "totals": MarketType.TOTAL,
    "total": MarketType.TOTAL,
}


class Side(str, Enum):
    AWAY = "away"
    HOME = "home"
    OVER = "over"
    UNDER = "under"

    @property
    def opposite(self) -> "Side":
        return {
            Side.AWAY: Side.HOME,
            Side.HOME: Side.AWAY,
            Side.OVER: Side.UNDER,
            Side.UNDER: Side.OVER,
        }[self]


class MatchConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ValueTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# MARKET DATA
# =============================================================================

@dataclass(frozen=True)
class RawOutcome:
    """An outcome exactly as a sportsbook lists it, before side resolution."""
    name: str
    price: float
    point: Optional[float] = None


@dataclass(frozen=True)
class MarketQuote:
    event_id: str
    bookmaker: str
    market: MarketType
    side: Side
    price: float
    point: Optional[float] = None
    label: str = ""

    @property
    def american_odds(self) -> int:
        return decimal_to_american(self.price)

    @property
    def implied_probability(self) -> float:
        return decimal_to_implied_prob(self.price)


@dataclass(frozen=True)
class MatchResult:
    """Side resolution for one (event, bookmaker, market)."""
    market: MarketType
    away: Optional[RawOutcome]
    home: Optional[RawOutcome]
    confidence: MatchConfidence
    method: str
    warnings: Tuple[str, ...] = ()
    potential_reversal: bool = False
    odds_ratio: Optional[float] = None
    favorite: Optional[Side] = None

    @property
    def resolved(self) -> bool:
        return self.away is not None and self.home is not None

    def outcome_for(self, side: Side) -> Optional[RawOutcome]:
        if side == Side.AWAY:
            return self.away
        if side == Side.HOME:
            return self.home
        return None


# =============================================================================
# PREDICTIONS
# =============================================================================

@dataclass(frozen=True)
class SimulationSummary:
    """Monte Carlo output attached to a prediction (80% interval widths)."""
    spread_ci_width: float
    total_ci_width: float
    home_score_range: Optional[Tuple[float, float]] = None
    away_score_range: Optional[Tuple[float, float]] = None
    iterations: int = 0


@dataclass(frozen=True)
class PointEstimatePrediction:
    """
    Model output for one event without a simulated distribution.

    predicted_spread is positive when the home team is favored.
    """
    event_id: str
    home_win_probability: float
    predicted_spread: float
    predicted_total: float
    confidence: float

    @property
    def away_win_probability(self) -> float:
        return 1 - self.home_win_probability

    @property
    def predicted_home_score(self) -> float:
        return (self.predicted_total + self.predicted_spread) / 2

    @property
    def predicted_away_score(self) -> float:
        return (self.predicted_total - self.predicted_spread) / 2

    def ci_width(self, market: MarketType) -> Optional[float]:
        """Width of the simulated 80% interval relevant to a market."""
        return None


@dataclass(frozen=True)
class SimulatedPrediction(PointEstimatePrediction):
    """Prediction carrying a simulated distribution summary."""
    simulation: SimulationSummary = None

    def __post_init__(self) -> None:
        if self.simulation is None:
            raise SchemaValidationError(
                f"Simulated prediction {self.event_id} requires a simulation summary"
            )

    def ci_width(self, market: MarketType) -> Optional[float]:
        if market == MarketType.TOTAL:
            return self.simulation.total_ci_width
        return self.simulation.spread_ci_width


ModelPrediction = Union[PointEstimatePrediction, SimulatedPrediction]


def _probability_value(raw) -> float:
    value = float(raw)
    if value > 1:
        value = value / 100
    return value


def _score_range(raw) -> Optional[Tuple[float, float]]:
    if not raw:
        return None
    low, high = raw
    return (float(low), float(high))


def _number(payload: Dict, key: str, default: Optional[float] = None) -> float:
    raw = payload.get(key)
    if raw is None:
        if default is None:
            raise SchemaValidationError(f"prediction missing field: {key}")
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise SchemaValidationError(f"prediction field {key} is not numeric: {raw!r}") from None
    if not math.isfinite(value):
        raise SchemaValidationError(f"prediction field {key} is not finite: {raw!r}")
    return value


def prediction_from_dict(payload: Dict) -> ModelPrediction:
    """
    Build the right prediction variant from a JSON-style payload.

    Win probabilities may be given on a 0-1 or 0-100 scale. A payload with a
    'simulation' block becomes a SimulatedPrediction. Missing or non-numeric
    fields raise SchemaValidationError.
    """
    missing = [
        key for key in ("event_id", "home_win_probability", "predicted_spread", "predicted_total")
        if payload.get(key) is None
    ]
    if missing:
        raise SchemaValidationError(f"prediction missing fields: {', '.join(missing)}")
    base = dict(
        event_id=str(payload["event_id"]),
        home_win_probability=_probability_value(_number(payload, "home_win_probability")),
        predicted_spread=_number(payload, "predicted_spread"),
        predicted_total=_number(payload, "predicted_total"),
        confidence=_number(payload, "confidence", default=50.0),
    )
    simulation = payload.get("simulation")
    if not simulation:
        return PointEstimatePrediction(**base)
    if not isinstance(simulation, dict):
        raise SchemaValidationError(f"prediction {base['event_id']}: simulation must be an object")
    try:
        summary = SimulationSummary(
            spread_ci_width=_number(simulation, "spread_ci_width"),
            total_ci_width=_number(simulation, "total_ci_width"),
            home_score_range=_score_range(simulation.get("home_score_range")),
            away_score_range=_score_range(simulation.get("away_score_range")),
            iterations=int(_number(simulation, "iterations", default=0.0)),
        )
    except (TypeError, ValueError) as e:
        raise SchemaValidationError(f"prediction {base['event_id']}: bad simulation block ({e})") from e
    return SimulatedPrediction(simulation=summary, **base)


# =============================================================================
# RECOMMENDATIONS
# =============================================================================

@dataclass
class BetCandidate:
    """Working record for one bookmaker's price; mutated by weighting and gating."""
    event_id: str
    market: MarketType
    side: Side
    label: str
    bookmaker: str
    decimal_odds: float
    american_odds: int
    implied_probability: float
    model_probability: float
    edge: float
    expected_value: float
    confidence: int
    value_tier: ValueTier
    rationale: str
    point: Optional[float] = None
    kelly_fraction: float = 0.0
    discrepancy_warning: Optional[str] = None
    notes: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Recommendation:
    event_id: str
    market: MarketType
    side: Side
    label: str
    point: Optional[float]
    decimal_odds: float
    american_odds: int
    implied_probability: float
    model_probability: float
    edge: float
    expected_value: float
    confidence: int
    value_tier: ValueTier
    rationale: str
    bookmaker: str
    bookmakers: Tuple[str, ...]
    kelly_fraction: float = 0.0
    discrepancy_warning: Optional[str] = None

    def to_dict(self) -> Dict:
        payload = asdict(self)
        payload["market"] = self.market.value
        payload["side"] = self.side.value
        payload["value_tier"] = self.value_tier.value
        payload["bookmakers"] = list(self.bookmakers)
        return payload
