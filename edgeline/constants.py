"""
Sport definitions and per-sport threshold tables.

Provides the Sport enumeration (with a mandatory OTHER fallback), the
mapping to Odds API sport keys, and a SportProfile for every sport holding
simulation CI thresholds, margin standard deviations and line-movement
significance thresholds.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional


class Sport(str, Enum):
    NBA = "nba"
    NCAAB = "ncaab"
    NFL = "nfl"
    NHL = "nhl"
    MLB = "mlb"
    OTHER = "other"

    @classmethod
    def from_key(cls, key: Optional[str]) -> "Sport":
        """Resolve a short name or Odds API key; unknown keys map to OTHER."""
        if isinstance(key, Sport):
            return key
        text = (key or "").strip().lower()
        if not text:
            return cls.OTHER
        for sport in cls:
            if text == sport.value:
                return sport
        alias = _SPORT_ALIASES.get(text)
        if alias is not None:
            return alias
        for sport, api_key in ODDS_API_SPORT_KEYS.items():
            if text == api_key:
                return sport
        return cls.OTHER


# =============================================================================
# ODDS API KEYS
# =============================================================================

ODDS_API_SPORT_KEYS: Dict[Sport, str] = {
    Sport.NBA: "basketball_nba",
    Sport.NCAAB: "basketball_ncaab",
    Sport.NFL: "americanfootball_nfl",
    Sport.NHL: "icehockey_nhl",
    Sport.MLB: "baseball_mlb",
}

_SPORT_ALIASES: Dict[str, Sport] = {
    "cbb": Sport.NCAAB,
    "ncaam": Sport.NCAAB,
    "college_basketball": Sport.NCAAB,
    "football": Sport.NFL,
    "hockey": Sport.NHL,
    "baseball": Sport.MLB,
}


# =============================================================================
# THRESHOLD TABLES
# =============================================================================

# Spread standard deviation used by the bounded cover-probability curve
DEFAULT_SPREAD_STD_DEV = 10.0
DEFAULT_TOTAL_STD_DEV = 10.0


@dataclass(frozen=True)
class CIThresholds:
    """80% simulation interval widths: no penalty at or below acceptable, floor at filter."""
    acceptable: float
    filter: float


@dataclass(frozen=True)
class MovementThresholds:
    """Opening-to-closing moves that count as significant."""
    spread: float
    total: float
    moneyline_pct: float


@dataclass(frozen=True)
class SportProfile:
    sport: Sport
    spread_ci: CIThresholds
    total_ci: CIThresholds
    movement: MovementThresholds
    spread_std_dev: float = DEFAULT_SPREAD_STD_DEV
    total_std_dev: float = DEFAULT_TOTAL_STD_DEV


SPORT_PROFILES: Dict[Sport, SportProfile] = {
    Sport.NBA: SportProfile(
        sport=Sport.NBA,
        spread_ci=CIThresholds(acceptable=12.0, filter=26.0),
        total_ci=CIThresholds(acceptable=20.0, filter=40.0),
        movement=MovementThresholds(spread=2.0, total=4.0, moneyline_pct=15.0),
    ),
    Sport.NCAAB: SportProfile(
        sport=Sport.NCAAB,
        spread_ci=CIThresholds(acceptable=12.0, filter=26.0),
        total_ci=CIThresholds(acceptable=20.0, filter=40.0),
        movement=MovementThresholds(spread=2.5, total=5.0, moneyline_pct=20.0),
    ),
    Sport.NFL: SportProfile(
        sport=Sport.NFL,
        spread_ci=CIThresholds(acceptable=14.0, filter=28.0),
        total_ci=CIThresholds(acceptable=14.0, filter=28.0),
        movement=MovementThresholds(spread=1.5, total=3.0, moneyline_pct=15.0),
    ),
    Sport.NHL: SportProfile(
        sport=Sport.NHL,
        spread_ci=CIThresholds(acceptable=1.5, filter=3.5),
        total_ci=CIThresholds(acceptable=2.0, filter=4.0),
        movement=MovementThresholds(spread=0.5, total=0.5, moneyline_pct=15.0),
    ),
    Sport.MLB: SportProfile(
        sport=Sport.MLB,
        spread_ci=CIThresholds(acceptable=2.5, filter=5.0),
        total_ci=CIThresholds(acceptable=3.0, filter=6.0),
        movement=MovementThresholds(spread=0.5, total=1.0, moneyline_pct=15.0),
    ),
    Sport.OTHER: SportProfile(
        sport=Sport.OTHER,
        spread_ci=CIThresholds(acceptable=12.0, filter=26.0),
        total_ci=CIThresholds(acceptable=20.0, filter=40.0),
        movement=MovementThresholds(spread=2.5, total=5.0, moneyline_pct=20.0),
    ),
}


def get_sport_profile(
    sport,
    spread_std_dev: Optional[float] = None,
    total_std_dev: Optional[float] = None,
) -> SportProfile:
    """
    Look up the profile for a sport, applying optional std-dev overrides.

    Args:
        sport: Sport member or any key accepted by Sport.from_key
        spread_std_dev: Override for the margin standard deviation
        total_std_dev: Override for the total standard deviation

    Returns:
        SportProfile (OTHER's profile when the sport is unknown)
    """
    profile = SPORT_PROFILES.get(Sport.from_key(sport), SPORT_PROFILES[Sport.OTHER])
    changes = {}
    if spread_std_dev is not None and spread_std_dev > 0:
        changes["spread_std_dev"] = float(spread_std_dev)
    if total_std_dev is not None and total_std_dev > 0:
        changes["total_std_dev"] = float(total_std_dev)
    return replace(profile, **changes) if changes else profile
