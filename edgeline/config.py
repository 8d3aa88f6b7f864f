"""Configuration for the engine and its command line runs."""

from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
import json
import os

from edgeline.constants import Sport
from edgeline.exceptions import ConfigurationError
from edgeline.models.calibration import MIN_SAMPLES
from edgeline.models.consolidation import RANK_TIE_TOLERANCE
from edgeline.models.edge import MIN_EDGE
from edgeline.models.engine import MIN_CONFIDENCE, EngineSettings
from edgeline.monitoring.line_monitor import RepredictionPolicy

_ENV_PREFIX = "EDGELINE_"

_DEFAULT_RECALIBRATION_PATH = "data/recalibration.json"
_DEFAULT_ODDS_HISTORY_DB = "data/odds_history.db"
_DEFAULT_OUTPUT_DIR = "outputs"
_DEFAULT_SPORT = "other"
_DEFAULT_MAX_WORKERS = 1

# Re-prediction defaults
_DEFAULT_MAX_REPREDICTIONS = 3
_DEFAULT_REPREDICTION_COOLDOWN_MINUTES = 60.0
_DEFAULT_MIN_MINUTES_BEFORE_START = 30.0


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _coerce_float(value: Optional[str], default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _coerce_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _coerce_list(value: Optional[str], default: List[str]) -> List[str]:
    if value is None or value == "":
        return list(default)
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return list(default)


def _coerce_sport_map(key: str, value: Optional[str], default: Dict[str, float]) -> Dict[str, float]:
    """Parse 'nhl:2.5,mlb:3' into {'nhl': 2.5, 'mlb': 3.0}."""
    if value is None or value == "":
        return dict(default)
    if isinstance(value, dict):
        items = [f"{k}:{v}" for k, v in value.items()]
    else:
        items = _coerce_list(value, [])
    parsed: Dict[str, float] = {}
    for item in items:
        sport_key, sep, raw = item.partition(":")
        if not sep:
            raise ConfigurationError(key, f"expected sport:value, got {item!r}")
        sport = Sport.from_key(sport_key.strip())
        if sport == Sport.OTHER and sport_key.strip().lower() != Sport.OTHER.value:
            raise ConfigurationError(key, f"unknown sport {sport_key.strip()!r}")
        try:
            std_dev = float(raw)
        except ValueError:
            raise ConfigurationError(key, f"not a number: {raw!r}") from None
        if std_dev <= 0:
            raise ConfigurationError(key, f"standard deviation must be positive, got {std_dev}")
        parsed[sport.value] = std_dev
    return parsed


def _parse_env_file(path: Path) -> Dict[str, str]:
    data: Dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = _strip_quotes(value.strip())
    return data


def _load_config_data(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    if path.suffix.lower() == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        # JSON objects (std dev maps) stay structured; everything else as text
        return {
            str(k): v if isinstance(v, (dict, list)) else str(v)
            for k, v in payload.items()
        }
    return _parse_env_file(path)


@dataclass
class Config:
    # Recommendation thresholds
    min_edge: float = MIN_EDGE
    min_confidence: int = MIN_CONFIDENCE
    rank_tie_tolerance: float = RANK_TIE_TOLERANCE
    suppress_low_confidence: bool = False
    spread_std_dev: Dict[str, float] = field(default_factory=dict)
    total_std_dev: Dict[str, float] = field(default_factory=dict)
    default_sport: str = _DEFAULT_SPORT
    max_workers: int = _DEFAULT_MAX_WORKERS

    # Recalibration
    recalibration_path: str = _DEFAULT_RECALIBRATION_PATH
    recalibration_min_samples: int = MIN_SAMPLES

    # Line movement
    odds_history_db: str = _DEFAULT_ODDS_HISTORY_DB
    max_repredictions: int = _DEFAULT_MAX_REPREDICTIONS
    reprediction_cooldown_minutes: float = _DEFAULT_REPREDICTION_COOLDOWN_MINUTES
    min_minutes_before_start: float = _DEFAULT_MIN_MINUTES_BEFORE_START

    # Files
    match_overrides_path: str = ""
    output_dir: str = _DEFAULT_OUTPUT_DIR

    def __post_init__(self) -> None:
        if not 0 <= self.min_edge < 1:
            raise ConfigurationError("MIN_EDGE", f"must be in [0, 1), got {self.min_edge}")
        if not 0 <= self.min_confidence <= 100:
            raise ConfigurationError("MIN_CONFIDENCE", f"must be in [0, 100], got {self.min_confidence}")
        if self.rank_tie_tolerance < 0:
            raise ConfigurationError("RANK_TIE_TOLERANCE", "must not be negative")
        if self.recalibration_min_samples < 1:
            raise ConfigurationError("RECALIBRATION_MIN_SAMPLES", "must be at least 1")
        if self.max_workers < 1:
            raise ConfigurationError("MAX_WORKERS", "must be at least 1")
        self.default_sport = Sport.from_key(self.default_sport).value

    @classmethod
    def _from_source(cls, source: Mapping[str, Any], base: "Config") -> "Config":
        def get(name: str):
            return source.get(_ENV_PREFIX + name, source.get(name))

        return cls(
            min_edge=_coerce_float(get("MIN_EDGE"), base.min_edge),
            min_confidence=_coerce_int(get("MIN_CONFIDENCE"), base.min_confidence),
            rank_tie_tolerance=_coerce_float(get("RANK_TIE_TOLERANCE"), base.rank_tie_tolerance),
            suppress_low_confidence=_coerce_bool(
                get("SUPPRESS_LOW_CONFIDENCE"),
                base.suppress_low_confidence,
            ),
            spread_std_dev=_coerce_sport_map(
                "SPREAD_STD_DEV",
                get("SPREAD_STD_DEV"),
                base.spread_std_dev,
            ),
            total_std_dev=_coerce_sport_map(
                "TOTAL_STD_DEV",
                get("TOTAL_STD_DEV"),
                base.total_std_dev,
            ),
            default_sport=get("SPORT") or base.default_sport,
            max_workers=_coerce_int(get("MAX_WORKERS"), base.max_workers),
            recalibration_path=get("RECALIBRATION_PATH") or base.recalibration_path,
            recalibration_min_samples=_coerce_int(
                get("RECALIBRATION_MIN_SAMPLES"),
                base.recalibration_min_samples,
            ),
            odds_history_db=get("ODDS_HISTORY_DB") or base.odds_history_db,
            max_repredictions=_coerce_int(get("MAX_REPREDICTIONS"), base.max_repredictions),
            reprediction_cooldown_minutes=_coerce_float(
                get("REPREDICTION_COOLDOWN_MINUTES"),
                base.reprediction_cooldown_minutes,
            ),
            min_minutes_before_start=_coerce_float(
                get("MIN_MINUTES_BEFORE_START"),
                base.min_minutes_before_start,
            ),
            match_overrides_path=get("MATCH_OVERRIDES_PATH") or base.match_overrides_path,
            output_dir=get("OUTPUT_DIR") or base.output_dir,
        )

    @classmethod
    def from_env(cls) -> "Config":
        env = {key: value for key, value in os.environ.items() if key.startswith(_ENV_PREFIX)}
        return cls._from_source(env, cls())

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Environment settings, overlaid with a .env-style or JSON file when given."""
        env_config = cls.from_env()
        if not config_path:
            return env_config
        file_data = _load_config_data(Path(config_path))
        return cls._from_source(file_data, env_config)

    def engine_settings(self) -> EngineSettings:
        return EngineSettings(
            min_edge=self.min_edge,
            min_confidence=self.min_confidence,
            rank_tie_tolerance=self.rank_tie_tolerance,
            suppress_low_confidence=self.suppress_low_confidence,
            spread_std_dev=dict(self.spread_std_dev),
            total_std_dev=dict(self.total_std_dev),
            max_workers=self.max_workers,
        )

    def reprediction_policy(self) -> RepredictionPolicy:
        return RepredictionPolicy(
            max_repredictions=self.max_repredictions,
            cooldown_minutes=self.reprediction_cooldown_minutes,
            min_minutes_before_start=self.min_minutes_before_start,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
