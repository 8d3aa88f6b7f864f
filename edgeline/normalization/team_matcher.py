"""
Resolve sportsbook outcomes to canonical away/home sides.

Books list outcomes with their own team spellings and in no guaranteed
order. Matching runs through ordered strategies:

1. Manual override for known problem matchups (confidence high)
2. Exact/substring match against name variants (confidence high)
3. Fuzzy similarity above 0.70 (high above 0.85, else medium)
4. Spread-point fallback: negative point = home (confidence medium)
5. Positional fallback: first = away, second = home (confidence low)

Two-sided markets are then checked against their prices. A low-confidence
positional match with an odds ratio above 5x is flagged as a potential
reversal. Ambiguity never raises; callers decide what to suppress.

Usage:
    from edgeline.normalization.team_matcher import parse_event_quotes

    parsed = parse_event_quotes(event)
    for quote in parsed.quotes:
        ...
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple
import logging
import math

from edgeline.exceptions import MarketDataError
from edgeline.models.types import (
    MarketQuote,
    MarketType,
    MatchConfidence,
    MatchResult,
    RawOutcome,
    Side,
)
from edgeline.normalization.name_utils import (
    best_similarity,
    team_name_variants,
    variant_matches,
)
from edgeline.normalization.overrides import OverrideRegistry, get_override_registry
from edgeline.normalization.schema import validate_event
from edgeline.ops.metrics import MetricsRecorder, get_metrics_recorder
from edgeline.utils.odds import determine_favorite, validate_odds

logger = logging.getLogger(__name__)

METHOD_EXACT = "exact"
METHOD_FUZZY = "fuzzy"
METHOD_POSITION = "position"
METHOD_ODDS_VALIDATED = "odds-validated"
METHOD_OVERRIDE = "override"

FUZZY_THRESHOLD = 0.70
FUZZY_HIGH_THRESHOLD = 0.85
REVERSAL_ODDS_RATIO = 5.0
EXTREME_ODDS_RATIO = 10.0


# =============================================================================
# SIDE MATCHING
# =============================================================================

def match_outcomes(
    outcomes: Sequence[RawOutcome],
    away_team: str,
    home_team: str,
    market: MarketType = MarketType.MONEYLINE,
    registry: Optional[OverrideRegistry] = None,
) -> MatchResult:
    """
    Assign a book's raw outcomes to the away and home sides.

    Args:
        outcomes: Outcomes in the order the book listed them
        away_team: Canonical away team name
        home_team: Canonical home team name
        market: Market the outcomes belong to
        registry: Override registry (process default when omitted)

    Returns:
        MatchResult; each outcome is assigned to at most one side
    """
    outcomes = list(outcomes)
    if len(outcomes) < 2:
        return MatchResult(
            market=market,
            away=None,
            home=None,
            confidence=MatchConfidence.LOW,
            method=METHOD_POSITION,
            warnings=("Market has insufficient outcomes",),
        )

    registry = registry if registry is not None else get_override_registry()
    override = registry.find(away_team, home_team)
    if override is not None:
        away, home = override.assign(outcomes)
        warnings = [f"Using manual override: {override.reason}"] if override.reason else []
        return _validate(market, away, home, MatchConfidence.HIGH, METHOD_OVERRIDE,
                         warnings, away_team, home_team, len(outcomes))

    away_variants = team_name_variants(away_team)
    home_variants = team_name_variants(home_team)
    away_idx: Optional[int] = None
    home_idx: Optional[int] = None
    confidence = MatchConfidence.LOW
    method = METHOD_POSITION
    warnings: List[str] = []

    # Whole-name equality first so a shared city token cannot steal an outcome
    for exact_only in (True, False):
        for idx, outcome in enumerate(outcomes):
            if idx in (away_idx, home_idx):
                continue
            if away_idx is None and variant_matches(outcome.name, away_variants, exact_only):
                away_idx = idx
                confidence, method = MatchConfidence.HIGH, METHOD_EXACT
                continue
            if home_idx is None and variant_matches(outcome.name, home_variants, exact_only):
                home_idx = idx
                confidence, method = MatchConfidence.HIGH, METHOD_EXACT

    if away_idx is None:
        idx, score = _best_fuzzy(outcomes, away_variants, taken={home_idx})
        if idx is not None:
            away_idx = idx
            confidence = MatchConfidence.HIGH if score > FUZZY_HIGH_THRESHOLD else MatchConfidence.MEDIUM
            method = METHOD_FUZZY
    if home_idx is None:
        idx, score = _best_fuzzy(outcomes, home_variants, taken={away_idx})
        if idx is not None:
            home_idx = idx
            confidence = MatchConfidence.HIGH if score > FUZZY_HIGH_THRESHOLD else MatchConfidence.MEDIUM
            method = METHOD_FUZZY

    if away_idx is None or home_idx is None:
        away_idx, home_idx, confidence, method = _fallback(
            outcomes, away_idx, home_idx, confidence, method,
            warnings, away_team, home_team,
        )

    away = outcomes[away_idx] if away_idx is not None else None
    home = outcomes[home_idx] if home_idx is not None else None
    return _validate(market, away, home, confidence, method, warnings,
                     away_team, home_team, len(outcomes))


def _best_fuzzy(
    outcomes: List[RawOutcome],
    variants: List[str],
    taken: Set[Optional[int]],
) -> Tuple[Optional[int], float]:
    best_idx = None
    best_score = 0.0
    for idx, outcome in enumerate(outcomes):
        if idx in taken:
            continue
        score = best_similarity(outcome.name, variants)
        if score > FUZZY_THRESHOLD and score > best_score:
            best_idx, best_score = idx, score
    return best_idx, best_score


def _fallback(
    outcomes: List[RawOutcome],
    away_idx: Optional[int],
    home_idx: Optional[int],
    confidence: MatchConfidence,
    method: str,
    warnings: List[str],
    away_team: str,
    home_team: str,
):
    if len(outcomes) == 2 and (away_idx is not None or home_idx is not None):
        # One side is known, the other outcome is the only one left
        if away_idx is None:
            away_idx = 1 - home_idx
            warnings.append(f"Away side ({away_team}) inferred from the remaining outcome")
        else:
            home_idx = 1 - away_idx
            warnings.append(f"Home side ({home_team}) inferred from the remaining outcome")
        return away_idx, home_idx, confidence, method

    if len(outcomes) == 2:
        first, second = outcomes
        if first.point is not None and second.point is not None:
            if first.point < 0 < second.point:
                warnings.append(
                    f"Using spread point logic: {second.name} ({second.point:+g}) = away, "
                    f"{first.name} ({first.point:g}) = home"
                )
                return 1, 0, MatchConfidence.MEDIUM, METHOD_ODDS_VALIDATED
            if second.point < 0 < first.point:
                warnings.append(
                    f"Using spread point logic: {first.name} ({first.point:+g}) = away, "
                    f"{second.name} ({second.point:g}) = home"
                )
                return 0, 1, MatchConfidence.MEDIUM, METHOD_ODDS_VALIDATED
            warnings.append("Using position-based matching (spread points unclear)")
            return 0, 1, MatchConfidence.LOW, METHOD_POSITION

    free = [idx for idx in range(len(outcomes)) if idx not in (away_idx, home_idx)]
    if away_idx is None and free:
        away_idx = free.pop(0)
        warnings.append(f"Using position-based matching for away team ({away_team})")
    if home_idx is None and free:
        home_idx = free.pop(0)
        warnings.append(f"Using position-based matching for home team ({home_team})")
    return away_idx, home_idx, MatchConfidence.LOW, METHOD_POSITION


def _validate(
    market: MarketType,
    away: Optional[RawOutcome],
    home: Optional[RawOutcome],
    confidence: MatchConfidence,
    method: str,
    warnings: List[str],
    away_team: str,
    home_team: str,
    outcome_count: int,
) -> MatchResult:
    odds_ratio = None
    favorite = None
    potential_reversal = False

    if market.two_sided and away is not None and home is not None:
        if away.price < 1.0 or home.price < 1.0:
            warnings.append(
                f"Invalid odds detected: away={away.price}, home={home.price}. "
                "Skipping odds-based validation."
            )
        else:
            if not validate_odds(home.price, away.price):
                warnings.append(f"Odds validation failed: home={home.price}, away={away.price}")
            odds_ratio = max(home.price, away.price) / min(home.price, away.price)
            favorite = _favorite(market, away, home)
            if (
                confidence == MatchConfidence.LOW
                and method == METHOD_POSITION
                and odds_ratio > REVERSAL_ODDS_RATIO
            ):
                potential_reversal = True
                fav_team = home_team if favorite == Side.HOME else away_team
                fav_price = home.price if favorite == Side.HOME else away.price
                warnings.append(
                    f"Potential reversal: odds ratio {odds_ratio:.2f} on a positional match. "
                    f"Market favorite is {fav_team} ({fav_price} decimal)"
                )
                if odds_ratio > EXTREME_ODDS_RATIO:
                    warnings.append(
                        "Very large odds difference on a positional match; "
                        "consider a manual override for this matchup"
                    )
                logger.warning(f"{away_team} @ {home_team} {market.value}: {warnings[-1]}")

    return MatchResult(
        market=market,
        away=away,
        home=home,
        confidence=confidence,
        method=method,
        warnings=tuple(warnings),
        potential_reversal=potential_reversal,
        odds_ratio=odds_ratio,
        favorite=favorite,
    )


def _favorite(market: MarketType, away: RawOutcome, home: RawOutcome) -> Optional[Side]:
    if market == MarketType.SPREAD and away.point is not None and home.point is not None:
        if home.point < away.point:
            return Side.HOME
        if away.point < home.point:
            return Side.AWAY
    side = determine_favorite(away.price, home.price)
    return Side(side) if side else None


# =============================================================================
# EVENT PARSING
# =============================================================================

@dataclass
class EventQuotes:
    """Quotes resolved from one event payload, plus the matches behind them."""
    event_id: str
    away_team: str
    home_team: str
    quotes: List[MarketQuote] = field(default_factory=list)
    matches: Dict[Tuple[str, MarketType], MatchResult] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    skipped: int = 0

    def match_for(self, quote: MarketQuote) -> Optional[MatchResult]:
        return self.matches.get((quote.bookmaker, quote.market))


def _raw_outcome(payload: Dict) -> Optional[RawOutcome]:
    try:
        price = float(payload.get("price"))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price):
        return None
    point = payload.get("point")
    try:
        point = float(point) if point not in (None, "") else None
    except (TypeError, ValueError):
        point = None
    if point is not None and not math.isfinite(point):
        point = None
    return RawOutcome(name=str(payload.get("name") or ""), price=price, point=point)


def _total_side(name: str) -> Optional[Side]:
    label = (name or "").strip().lower()
    if label.startswith("over"):
        return Side.OVER
    if label.startswith("under"):
        return Side.UNDER
    return None


def parse_event_quotes(
    event: Dict,
    registry: Optional[OverrideRegistry] = None,
    suppress_low_confidence: bool = False,
    metrics: Optional[MetricsRecorder] = None,
) -> EventQuotes:
    """
    Turn an Odds API-style event into side-resolved MarketQuotes.

    Malformed quotes (missing or non-finite price, decimal below 1.0) are
    logged and skipped. Unknown market keys are ignored.
    """
    validate_event(event)
    metrics = metrics or get_metrics_recorder()
    event_id = str(event["id"])
    away_team = str(event["away_team"]).strip()
    home_team = str(event["home_team"]).strip()
    if not away_team or not home_team:
        raise MarketDataError(event_id, "away/home team names are required")

    parsed = EventQuotes(event_id=event_id, away_team=away_team, home_team=home_team)
    for book in event.get("bookmakers") or []:
        bookmaker = str(book.get("title") or book.get("key") or "unknown")
        for market_payload in book.get("markets") or []:
            try:
                market = MarketType.from_key(market_payload.get("key"))
            except ValueError:
                logger.debug(f"Ignoring market {market_payload.get('key')} from {bookmaker}")
                continue
            outcomes = []
            for raw in market_payload.get("outcomes") or []:
                outcome = _raw_outcome(raw)
                if outcome is None or outcome.price < 1.0:
                    parsed.skipped += 1
                    metrics.increment("quotes.skipped")
                    logger.warning(
                        f"Skipping malformed quote for {event_id} from {bookmaker}: {raw}"
                    )
                    continue
                outcomes.append(outcome)

            if market == MarketType.TOTAL:
                _add_totals(parsed, bookmaker, outcomes)
                continue
            _add_sides(parsed, bookmaker, market, outcomes, registry,
                       suppress_low_confidence, metrics)

    _cross_check_favorites(parsed)
    return parsed


def _add_totals(parsed: EventQuotes, bookmaker: str, outcomes: List[RawOutcome]) -> None:
    for outcome in outcomes:
        side = _total_side(outcome.name)
        if side is None or outcome.point is None:
            parsed.skipped += 1
            logger.warning(
                f"Skipping unlabeled total for {parsed.event_id} from {bookmaker}: {outcome.name}"
            )
            continue
        parsed.quotes.append(
            MarketQuote(
                event_id=parsed.event_id,
                bookmaker=bookmaker,
                market=MarketType.TOTAL,
                side=side,
                price=outcome.price,
                point=outcome.point,
                label=f"{side.value.title()} {outcome.point:g}",
            )
        )


def _add_sides(
    parsed: EventQuotes,
    bookmaker: str,
    market: MarketType,
    outcomes: List[RawOutcome],
    registry: Optional[OverrideRegistry],
    suppress_low_confidence: bool,
    metrics: MetricsRecorder,
) -> None:
    result = match_outcomes(outcomes, parsed.away_team, parsed.home_team, market, registry)
    parsed.matches[(bookmaker, market)] = result
    for warning in result.warnings:
        parsed.warnings.append(f"{bookmaker} {market.value}: {warning}")
    if result.confidence == MatchConfidence.LOW:
        metrics.increment("matches.low_confidence")
        if suppress_low_confidence:
            logger.info(
                f"Suppressing low-confidence {market.value} match for {parsed.event_id} "
                f"from {bookmaker}"
            )
            return

    teams = {Side.AWAY: parsed.away_team, Side.HOME: parsed.home_team}
    for side in (Side.AWAY, Side.HOME):
        outcome = result.outcome_for(side)
        if outcome is None:
            continue
        if market == MarketType.SPREAD and outcome.point is None:
            parsed.skipped += 1
            logger.warning(f"Skipping spread quote without a point from {bookmaker}")
            continue
        label = teams[side]
        if market == MarketType.SPREAD:
            label = f"{label} {outcome.point:+g}"
        parsed.quotes.append(
            MarketQuote(
                event_id=parsed.event_id,
                bookmaker=bookmaker,
                market=market,
                side=side,
                price=outcome.price,
                point=outcome.point if market == MarketType.SPREAD else None,
                label=label,
            )
        )


def _cross_check_favorites(parsed: EventQuotes) -> None:
    """Flag books whose moneyline and spread disagree on the favorite."""
    books = {bookmaker for bookmaker, _ in parsed.matches}
    for bookmaker in sorted(books):
        moneyline = parsed.matches.get((bookmaker, MarketType.MONEYLINE))
        spread = parsed.matches.get((bookmaker, MarketType.SPREAD))
        if moneyline is None or spread is None:
            continue
        if moneyline.favorite and spread.favorite and moneyline.favorite != spread.favorite:
            message = (
                f"{bookmaker}: moneyline favors {moneyline.favorite.value} "
                f"but spread favors {spread.favorite.value}"
            )
            parsed.warnings.append(message)
            logger.warning(f"Favorite mismatch for {parsed.event_id}: {message}")
