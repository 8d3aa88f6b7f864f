"""Odds normalization and team matching."""

from edgeline.normalization.team_matcher import EventQuotes, match_outcomes, parse_event_quotes
from edgeline.normalization.overrides import MatchOverride, OverrideRegistry, get_override_registry

__all__ = [
    "EventQuotes",
    "MatchOverride",
    "OverrideRegistry",
    "get_override_registry",
    "match_outcomes",
    "parse_event_quotes",
]
