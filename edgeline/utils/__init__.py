"""Shared utility helpers."""

from edgeline.utils.odds import (
    EPSILON,
    american_to_decimal,
    american_to_implied_prob,
    calculate_edge,
    clamp_probability,
    decimal_to_american,
    decimal_to_implied_prob,
    expected_value_pct,
    kelly_criterion,
    remove_vig,
    validate_odds,
)

__all__ = [
    "EPSILON",
    "american_to_decimal",
    "american_to_implied_prob",
    "calculate_edge",
    "clamp_probability",
    "decimal_to_american",
    "decimal_to_implied_prob",
    "expected_value_pct",
    "kelly_criterion",
    "remove_vig",
    "validate_odds",
]
