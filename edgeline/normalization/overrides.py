"""
Manual side assignments for matchups the automatic matcher gets wrong.

Each override names the away/home team by substring or regex and pins the
outcome index (in the book's listing order) for each side. Overrides can be
loaded from a JSON file:

    [
        {"away": "uc riverside", "home": "ucla", "away_index": 0,
         "home_index": 1, "reason": "UCLA odds assigned to UC Riverside"}
    ]
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Pattern, Sequence, TypeVar, Tuple, Union
import json
import logging
import re
import threading

from edgeline.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MatchOverride:
    away_pattern: Union[str, Pattern]
    home_pattern: Union[str, Pattern]
    away_index: int
    home_index: int
    reason: str = ""

    def applies_to(self, away_team: str, home_team: str) -> bool:
        return _pattern_matches(self.away_pattern, away_team) and _pattern_matches(
            self.home_pattern, home_team
        )

    def assign(self, outcomes: Sequence[T]) -> Tuple[Optional[T], Optional[T]]:
        away = outcomes[self.away_index] if self.away_index < len(outcomes) else None
        home = outcomes[self.home_index] if self.home_index < len(outcomes) else None
        return away, home


def _pattern_matches(pattern: Union[str, Pattern], team: str) -> bool:
    if isinstance(pattern, str):
        return pattern.lower() in (team or "").lower()
    return bool(pattern.search(team or ""))


class OverrideRegistry:
    """Thread-safe list of overrides, searched in registration order."""

    def __init__(self, overrides: Optional[List[MatchOverride]] = None) -> None:
        self._overrides: List[MatchOverride] = list(overrides or [])
        self._lock = threading.Lock()

    def register(self, override: MatchOverride) -> None:
        with self._lock:
            self._overrides.append(override)

    def clear(self) -> None:
        with self._lock:
            self._overrides.clear()

    def find(self, away_team: str, home_team: str) -> Optional[MatchOverride]:
        with self._lock:
            overrides = list(self._overrides)
        for override in overrides:
            if override.applies_to(away_team, home_team):
                return override
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._overrides)

    @classmethod
    def from_file(cls, path: Path) -> "OverrideRegistry":
        """Load overrides from JSON; a missing file yields an empty registry."""
        if not path.exists():
            return cls()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError("match_overrides_path", f"unreadable {path}: {e}") from e
        overrides = []
        for idx, row in enumerate(payload or []):
            try:
                overrides.append(
                    MatchOverride(
                        away_pattern=_compile(row["away"], row.get("regex", False)),
                        home_pattern=_compile(row["home"], row.get("regex", False)),
                        away_index=int(row.get("away_index", 0)),
                        home_index=int(row.get("home_index", 1)),
                        reason=str(row.get("reason", "")),
                    )
                )
            except (KeyError, TypeError, ValueError, re.error) as e:
                raise ConfigurationError("match_overrides_path", f"override {idx} invalid: {e}") from e
        logger.info(f"Loaded {len(overrides)} team match overrides from {path}")
        return cls(overrides)


def _compile(value: str, regex: bool) -> Union[str, Pattern]:
    return re.compile(value, re.IGNORECASE) if regex else str(value)


_DEFAULT_REGISTRY = OverrideRegistry()


def get_override_registry() -> OverrideRegistry:
    return _DEFAULT_REGISTRY
