"""Merge per-bookmaker candidates into one recommendation per opportunity."""

from typing import Dict, List, Sequence, Tuple
from functools import cmp_to_key

from edgeline.models.types import BetCandidate, MarketType, Recommendation, Side

# Edges closer than this are ranked by confidence instead
RANK_TIE_TOLERANCE = 0.005


def group_key(candidate: BetCandidate) -> Tuple[MarketType, Side]:
    """Market and side; price and point are deliberately not part of the key."""
    return (candidate.market, candidate.side)


def bookmaker_label(bookmakers: Sequence[str]) -> str:
    if len(bookmakers) == 1:
        return bookmakers[0]
    return f"{len(bookmakers)} books"


def consolidate(candidates: Sequence[BetCandidate]) -> List[Recommendation]:
    """
    One Recommendation per (market, side).

    Displayed price, edge, confidence and rationale all come from the single
    best-priced (highest decimal) candidate in the group; ties keep the first
    one seen. Only the best candidate's discrepancy warning is
    shown. Every offering bookmaker is retained.
    """
    groups: Dict[Tuple[MarketType, Side], List[BetCandidate]] = {}
    for candidate in candidates:
        groups.setdefault(group_key(candidate), []).append(candidate)

    recommendations = []
    for members in groups.values():
        best = members[0]
        for member in members[1:]:
            if member.decimal_odds > best.decimal_odds:
                best = member
        books: List[str] = []
        for member in members:
            if member.bookmaker not in books:
                books.append(member.bookmaker)
        recommendations.append(
            Recommendation(
                event_id=best.event_id,
                market=best.market,
                side=best.side,
                label=best.label,
                point=best.point,
                decimal_odds=best.decimal_odds,
                american_odds=best.american_odds,
                implied_probability=best.implied_probability,
                model_probability=best.model_probability,
                edge=best.edge,
                expected_value=best.expected_value,
                confidence=best.confidence,
                value_tier=best.value_tier,
                rationale=best.rationale,
                bookmaker=bookmaker_label(books),
                bookmakers=tuple(books),
                kelly_fraction=best.kelly_fraction,
                discrepancy_warning=best.discrepancy_warning,
            )
        )
    return recommendations


def rank_recommendations(
    recommendations: Sequence[Recommendation],
    tie_tolerance: float = RANK_TIE_TOLERANCE,
) -> List[Recommendation]:
    """Highest edge first; near-equal edges ordered by confidence."""

    def _compare(left: Recommendation, right: Recommendation) -> int:
        if abs(left.edge - right.edge) > tie_tolerance:
            return -1 if left.edge > right.edge else 1
        if left.confidence != right.confidence:
            return -1 if left.confidence > right.confidence else 1
        return 0

    return sorted(recommendations, key=cmp_to_key(_compare))
