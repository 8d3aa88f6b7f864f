"""
Odds conversion and betting math utilities.

Provides:
- Odds format conversions (American, Decimal, Implied Probability)
- Vig removal and two-sided price validation
- Edge and Expected Value calculations
- Kelly Criterion bet sizing
- Probability clamping and logit helpers
"""

import logging
import math
from typing import Optional, Tuple

from edgeline.exceptions import InvalidOddsError

logger = logging.getLogger(__name__)

# Probabilities are kept inside (EPSILON, 1 - EPSILON) before logs and logits
EPSILON = 1e-7

# Defer scipy import for faster module load
_special = None


def _get_special():
    """Lazy import of scipy.special."""
    global _special
    if _special is None:
        from scipy import special
        _special = special
    return _special


# =============================================================================
# ODDS CONVERSIONS
# =============================================================================

def american_to_decimal(odds: int) -> float:
    """
    Convert American odds to decimal odds.

    Examples:
        +150 -> 2.50 (risk $100 to win $150, total return $250)
        -150 -> 1.67 (risk $150 to win $100, total return $250)

    Args:
        odds: American odds (positive or negative integer)

    Returns:
        Decimal odds (always > 1.0)
    """
    if odds == 0:
        raise InvalidOddsError(odds, "American odds cannot be zero")
    if odds > 0:
        return (odds / 100) + 1
    else:
        return (100 / abs(odds)) + 1


def decimal_to_american(decimal: float) -> int:
    """
    Convert decimal odds to American odds.

    Examples:
        2.50 -> +150
        1.80 -> -125

    Args:
        decimal: Decimal odds (must be > 1.0)

    Returns:
        American odds, rounded to the nearest integer
    """
    value = _as_price(decimal)
    if value <= 1.0:
        raise InvalidOddsError(decimal, "decimal odds must be greater than 1.0")
    if value >= 2.0:
        return int(round((value - 1) * 100))
    return int(round(-100 / (value - 1)))


def american_to_implied_prob(odds: int) -> float:
    """
    Convert American odds to implied probability.

    Note: This includes the vig/juice, so probabilities will sum > 100%.

    Examples:
        -110 -> 0.524 (52.4% implied)
        +100 -> 0.500 (50.0% implied)
        -200 -> 0.667 (66.7% implied)

    Args:
        odds: American odds (positive or negative integer)

    Returns:
        Implied probability (0 to 1)
    """
    if odds > 0:
        return 100 / (odds + 100)
    else:
        return abs(odds) / (abs(odds) + 100)


def decimal_to_implied_prob(decimal: float) -> float:
    """
    Implied probability of a decimal price, routed through American odds.

    Going through the rounded American price keeps displayed odds and the
    probability used for edge calculations in agreement.
    """
    return american_to_implied_prob(decimal_to_american(decimal))


def _as_price(value) -> float:
    if value is None or value == "":
        raise InvalidOddsError(value, "missing price")
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise InvalidOddsError(value, "non-numeric price") from None
    if not math.isfinite(price):
        raise InvalidOddsError(value, "price must be finite")
    return price


def remove_vig(prob_a: float, prob_b: float) -> Tuple[float, float]:
    """
    Remove vig from implied probabilities to get true probabilities.

    Sportsbooks add vig so both sides sum > 100%. This normalizes them.

    Example:
        remove_vig(0.524, 0.524) -> (0.5, 0.5)

    Args:
        prob_a: Implied probability of the first side
        prob_b: Implied probability of the second side

    Returns:
        Tuple of fair probabilities that sum to 1.0
    """
    total = prob_a + prob_b
    if total == 0:
        return (0.5, 0.5)
    return (prob_a / total, prob_b / total)


def overround(decimal_a: float, decimal_b: float) -> float:
    """Sum of raw implied probabilities (1.0 = no vig)."""
    return (1 / decimal_a) + (1 / decimal_b)


def validate_odds(decimal_a: float, decimal_b: float) -> bool:
    """
    Check that a two-sided market looks like a real book.

    Both prices must be at least 1.0 and the combined implied probability
    must sit between 100% and 110% (a normal vig range).
    """
    if decimal_a < 1.0 or decimal_b < 1.0:
        return False
    total = overround(decimal_a, decimal_b)
    return 1.0 <= total <= 1.1


def determine_favorite(away_decimal: float, home_decimal: float) -> Optional[str]:
    """Return 'away' or 'home' for the shorter price, None for a pick'em."""
    if away_decimal < home_decimal:
        return "away"
    if home_decimal < away_decimal:
        return "home"
    return None


# =============================================================================
# EDGE & EXPECTED VALUE
# =============================================================================

def calculate_edge(model_prob: float, implied_prob: float) -> float:
    """Model probability minus market-implied probability."""
    return model_prob - implied_prob


def expected_value_pct(model_prob: float, implied_prob: float) -> float:
    """
    Expected value per unit staked, in percent.

    EV = p * (1/q - 1) - (1 - p), scaled by 100, where q is the implied
    probability of the price actually offered.

    Example:
        expected_value_pct(0.65, 0.5556) -> ~17.0
    """
    implied = clamp_probability(implied_prob)
    payout = (1 / implied) - 1
    return (model_prob * payout - (1 - model_prob)) * 100


def kelly_criterion(
    win_prob: float,
    decimal_odds: float,
    fraction: float = 0.25,
    max_fraction: float = 0.05,
) -> float:
    """
    Fractional Kelly stake as a share of bankroll.

    Args:
        win_prob: Model probability of winning
        decimal_odds: Offered decimal price
        fraction: Kelly multiplier (quarter Kelly by default)
        max_fraction: Cap on the returned stake

    Returns:
        Stake fraction in [0, max_fraction]
    """
    b = decimal_odds - 1
    if b <= 0:
        return 0.0
    q = 1 - win_prob
    full_kelly = (b * win_prob - q) / b
    if full_kelly <= 0:
        return 0.0
    return min(full_kelly * fraction, max_fraction)


# =============================================================================
# PROBABILITY HELPERS
# =============================================================================

def clamp_probability(prob: float, eps: float = EPSILON) -> float:
    """Clamp a probability into (eps, 1 - eps)."""
    return max(eps, min(1 - eps, float(prob)))


def logit(prob: float) -> float:
    """Log-odds of a probability, clamped away from 0 and 1 first."""
    return float(_get_special().logit(clamp_probability(prob)))


def expit(value: float) -> float:
    """Inverse of logit."""
    return float(_get_special().expit(value))


def implied_change_pct(opening_decimal: float, closing_decimal: float) -> float:
    """Absolute change in implied probability between two prices, in points."""
    opening = decimal_to_implied_prob(opening_decimal)
    closing = decimal_to_implied_prob(closing_decimal)
    return abs(closing - opening) * 100
