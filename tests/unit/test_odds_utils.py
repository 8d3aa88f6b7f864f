"""
Unit tests for edgeline/utils/odds.py

Tests the betting math utilities:
- Odds conversions (decimal, American, implied probability)
- Vig removal and two-sided validation
- Edge, EV and Kelly sizing
- Probability clamping and logit helpers
"""

import pytest

from edgeline.exceptions import InvalidOddsError
from edgeline.utils.odds import (
    american_to_decimal,
    american_to_implied_prob,
    calculate_edge,
    clamp_probability,
    decimal_to_american,
    decimal_to_implied_prob,
    determine_favorite,
    expected_value_pct,
    expit,
    implied_change_pct,
    kelly_criterion,
    logit,
    remove_vig,
    validate_odds,
)


class TestDecimalToAmerican:
    """Tests for decimal_to_american conversion."""

    def test_underdog_prices(self):
        """Prices of 2.0 and up become plus money."""
        assert decimal_to_american(2.50) == 150
        assert decimal_to_american(2.0) == 100
        assert decimal_to_american(3.75) == 275

    def test_favorite_prices(self):
        """Prices below 2.0 become minus money."""
        assert decimal_to_american(1.80) == -125
        assert decimal_to_american(1.50) == -200
        assert decimal_to_american(1.91) == -110

    def test_invalid_prices_raise(self):
        """Prices at or below 1.0, missing, non-numeric or non-finite raise."""
        with pytest.raises(InvalidOddsError):
            decimal_to_american(1.0)
        with pytest.raises(InvalidOddsError):
            decimal_to_american(0.95)
        with pytest.raises(InvalidOddsError):
            decimal_to_american(None)
        with pytest.raises(InvalidOddsError):
            decimal_to_american("abc")
        with pytest.raises(InvalidOddsError):
            decimal_to_american(float("inf"))
        with pytest.raises(InvalidOddsError):
            decimal_to_american(float("nan"))

    def test_invalid_odds_error_is_value_error(self):
        """InvalidOddsError can be caught as ValueError."""
        with pytest.raises(ValueError):
            decimal_to_american(1.0)

    @pytest.mark.parametrize("decimal", [2.0, 2.35, 3.1, 5.5, 11.0])
    def test_round_trip_for_underdogs(self, decimal):
        """Underdog prices survive a round trip to the cent."""
        assert american_to_decimal(decimal_to_american(decimal)) == pytest.approx(decimal, abs=0.005)


class TestAmericanToDecimal:
    """Tests for american_to_decimal conversion."""

    def test_positive_odds(self):
        """Standard underdog odds."""
        assert american_to_decimal(150) == pytest.approx(2.5)
        assert american_to_decimal(100) == pytest.approx(2.0)

    def test_negative_odds(self):
        """Standard favorite odds."""
        assert american_to_decimal(-200) == pytest.approx(1.5)
        assert american_to_decimal(-110) == pytest.approx(1.909, rel=0.01)

    def test_zero_raises(self):
        """American odds of zero are impossible."""
        with pytest.raises(InvalidOddsError):
            american_to_decimal(0)


class TestImpliedProbability:
    """Tests for implied probability and vig removal."""

    def test_american_implied(self):
        """Implied probability from American odds."""
        assert american_to_implied_prob(-110) == pytest.approx(0.5238, rel=0.001)
        assert american_to_implied_prob(100) == pytest.approx(0.5)
        assert american_to_implied_prob(-200) == pytest.approx(0.6667, rel=0.001)

    def test_decimal_goes_through_american(self):
        """Decimal prices are priced via their rounded American odds."""
        # 1.80 -> -125 -> 125/225
        assert decimal_to_implied_prob(1.80) == pytest.approx(125 / 225)

    def test_remove_vig(self):
        """Equal prices normalize to 50/50."""
        fair_a, fair_b = remove_vig(0.524, 0.524)
        assert fair_a == pytest.approx(0.5)
        assert fair_b == pytest.approx(0.5)

    def test_remove_vig_zero_total(self):
        """A zero total falls back to an even split."""
        assert remove_vig(0.0, 0.0) == (0.5, 0.5)


class TestValidateOdds:
    """Tests for two-sided price validation."""

    def test_normal_market(self):
        """A standard -110/-110 market is valid."""
        assert validate_odds(1.91, 1.91) is True

    def test_arbitrage_market_fails(self):
        """Implied probabilities summing under 1 are rejected."""
        assert validate_odds(2.2, 2.2) is False

    def test_excessive_vig_fails(self):
        """Overrounds above the limit are rejected."""
        assert validate_odds(1.5, 1.5) is False

    def test_price_below_one_fails(self):
        """Any price below 1.0 invalidates the market."""
        assert validate_odds(0.9, 3.0) is False

    def test_determine_favorite(self):
        """The lower price is the favorite; equal prices have none."""
        assert determine_favorite(2.5, 1.6) == "home"
        assert determine_favorite(1.6, 2.5) == "away"
        assert determine_favorite(1.91, 1.91) is None


class TestEdgeAndValue:
    """Tests for edge, expected value and Kelly sizing."""

    def test_calculate_edge(self):
        """Edge is model minus implied probability."""
        assert calculate_edge(0.65, 0.5556) == pytest.approx(0.0944)

    def test_expected_value(self):
        """EV percentage for the 1.80 / 65% reference bet."""
        assert expected_value_pct(0.65, 125 / 225) == pytest.approx(17.0)

    def test_expected_value_negative(self):
        """Negative edge gives negative EV."""
        assert expected_value_pct(0.40, 0.5) < 0

    def test_expected_value_clamps_degenerate_implied(self):
        """A zero implied probability is clamped, not divided by."""
        assert expected_value_pct(0.5, 0.0) > 0

    def test_kelly_positive_edge(self):
        """Default quarter Kelly on an even-money edge."""
        stake = kelly_criterion(0.60, 2.0)
        assert stake == pytest.approx(0.05)

    def test_kelly_fractional(self):
        """Custom fraction with the cap lifted."""
        assert kelly_criterion(0.55, 2.0, fraction=0.25, max_fraction=1.0) == pytest.approx(0.025)

    def test_kelly_no_edge(self):
        """No stake without an edge or with a price of 1.0."""
        assert kelly_criterion(0.45, 2.0) == 0.0
        assert kelly_criterion(0.9, 1.0) == 0.0


class TestProbabilityHelpers:
    """Tests for clamping, logit and implied-change helpers."""

    def test_clamp(self):
        """Probabilities stay strictly inside (0, 1)."""
        assert 0 < clamp_probability(0.0) < 1e-6
        assert 1 - 1e-6 < clamp_probability(1.0) < 1

    def test_logit_expit_inverse(self):
        """expit undoes logit."""
        for p in (0.1, 0.35, 0.5, 0.8):
            assert expit(logit(p)) == pytest.approx(p)

    def test_logit_is_finite_at_bounds(self):
        """Logit of 0 and 1 is clamped to finite values."""
        assert logit(0.0) < -10
        assert logit(1.0) > 10

    def test_implied_change_pct(self):
        """Change in implied probability between two prices, in points."""
        # -125 (55.6%) -> -200 (66.7%)
        assert implied_change_pct(1.80, 1.50) == pytest.approx(11.11, abs=0.01)
