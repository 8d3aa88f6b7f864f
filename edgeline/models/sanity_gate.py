"""
Moneyline guard against large contrarian edges.

When the market gives a side very little chance and the model disagrees by
a wide margin, the gap is more likely a model blind spot than a mispriced
line. The gate lowers presented confidence; it never drops the bet.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from edgeline.models.types import BetCandidate, MarketType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateBand:
    max_implied: float
    min_edge: float
    factor: float
    floor: int
    warn: bool


HARD_BAND = GateBand(max_implied=0.15, min_edge=0.25, factor=0.6, floor=40, warn=True)
SOFT_BAND = GateBand(max_implied=0.20, min_edge=0.20, factor=0.75, floor=50, warn=False)


@dataclass(frozen=True)
class GateResult:
    confidence: int
    band: Optional[str] = None
    warning: Optional[str] = None

    @property
    def triggered(self) -> bool:
        return self.band is not None


def check_disagreement(implied_probability: float, edge: float, confidence: int) -> GateResult:
    """
    Apply the hard band (implied < 0.15, edge > 0.25) or the soft band
    (implied < 0.20, edge > 0.20) to a moneyline confidence.
    """
    for name, band in (("hard", HARD_BAND), ("soft", SOFT_BAND)):
        if implied_probability < band.max_implied and edge > band.min_edge:
            gated = max(band.floor, int(round(confidence * band.factor)))
            warning = None
            if band.warn:
                warning = (
                    f"Model disagrees sharply with the market: market implies "
                    f"{implied_probability:.1%}, model edge {edge:+.1%}. "
                    "Treat as a long shot."
                )
            return GateResult(confidence=gated, band=name, warning=warning)
    return GateResult(confidence=confidence)


def apply_sanity_gate(candidate: BetCandidate) -> GateResult:
    """Gate a candidate in place; non-moneyline candidates pass through."""
    if candidate.market != MarketType.MONEYLINE:
        return GateResult(confidence=candidate.confidence)
    result = check_disagreement(candidate.implied_probability, candidate.edge, candidate.confidence)
    if result.triggered:
        logger.info(
            f"Sanity gate ({result.band}) on {candidate.event_id} {candidate.label} "
            f"@ {candidate.bookmaker}: confidence {candidate.confidence} -> {result.confidence}"
        )
        candidate.confidence = result.confidence
        if result.warning:
            candidate.discrepancy_warning = result.warning
    return result
