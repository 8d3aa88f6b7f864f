"""Platt recalibration of model win probabilities."""

from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import json
import logging
import math
import threading

import numpy as np

from edgeline.utils.odds import EPSILON, clamp_probability, expit, logit

logger = logging.getLogger(__name__)

MIN_SAMPLES = 20
A_GRID = np.round(np.linspace(0.5, 2.0, 16), 1)
B_GRID = np.round(np.linspace(-0.5, 0.5, 11), 1)
OUTPUT_FLOOR = 0.01
OUTPUT_CEILING = 0.99


@dataclass(frozen=True)
class RecalibrationParams:
    """Platt coefficients: p_cal = expit(a * logit(p) + b)."""
    a: float = 1.0
    b: float = 0.0
    version: int = 0
    samples: int = 0
    fitted_at: Optional[str] = None

    @property
    def is_passthrough(self) -> bool:
        return self.a == 1.0 and self.b == 0.0

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Dict) -> "RecalibrationParams":
        return cls(
            a=float(payload.get("a", 1.0)),
            b=float(payload.get("b", 0.0)),
            version=int(payload.get("version", 0)),
            samples=int(payload.get("samples", 0)),
            fitted_at=payload.get("fitted_at"),
        )


PASSTHROUGH = RecalibrationParams()


def apply_platt_scaling(prob: float, params: RecalibrationParams = PASSTHROUGH) -> float:
    """
    Recalibrate a raw home win probability.

    The input is clamped to (1e-7, 1 - 1e-7) before the logit and the output
    is kept inside [0.01, 0.99].
    """
    calibrated = expit(params.a * logit(prob) + params.b)
    return max(OUTPUT_FLOOR, min(OUTPUT_CEILING, calibrated))


def _mean_log_loss_grid(probs: np.ndarray, outcomes: np.ndarray) -> np.ndarray:
    """Mean log loss for every (a, b) grid point, shape (len(A_GRID), len(B_GRID))."""
    clipped = np.clip(probs, EPSILON, 1 - EPSILON)
    logits = np.log(clipped / (1 - clipped))
    z = A_GRID[:, None, None] * logits[None, None, :] + B_GRID[None, :, None]
    calibrated = np.clip(1 / (1 + np.exp(-z)), EPSILON, 1 - EPSILON)
    losses = -(outcomes * np.log(calibrated) + (1 - outcomes) * np.log(1 - calibrated))
    return losses.mean(axis=-1)


def _passthrough_loss(probs: np.ndarray, outcomes: np.ndarray) -> float:
    clipped = np.clip(probs, EPSILON, 1 - EPSILON)
    return float(-(outcomes * np.log(clipped) + (1 - outcomes) * np.log(1 - clipped)).mean())


def fit_platt_scaling(
    probs: Sequence[float],
    outcomes: Sequence[int],
    min_samples: int = MIN_SAMPLES,
) -> RecalibrationParams:
    """
    Grid-search Platt coefficients minimizing mean log loss.

    Args:
        probs: Raw home win probabilities in [0, 1]
        outcomes: 1 for a home win, 0 for an away win
        min_samples: Below this many pairs the passthrough fit is returned

    Returns:
        RecalibrationParams; (1, 0) unless a grid point strictly improves on it
    """
    prob_arr = np.asarray(list(probs), dtype=float)
    outcome_arr = np.asarray(list(outcomes), dtype=float)
    if prob_arr.shape != outcome_arr.shape:
        raise ValueError("probs and outcomes must have the same length")
    finite = np.isfinite(prob_arr) & np.isfinite(outcome_arr)
    if not finite.all():
        logger.warning(f"Dropping {int((~finite).sum())} non-finite calibration pairs")
        prob_arr, outcome_arr = prob_arr[finite], outcome_arr[finite]
    n = int(prob_arr.size)
    if n < min_samples:
        logger.info(f"Recalibration skipped: {n} samples < {min_samples}, keeping passthrough")
        return replace(PASSTHROUGH, samples=n)

    best_a, best_b = 1.0, 0.0
    best_loss = _passthrough_loss(prob_arr, outcome_arr)
    losses = _mean_log_loss_grid(prob_arr, outcome_arr)
    for i, a in enumerate(A_GRID):
        for j, b in enumerate(B_GRID):
            if losses[i, j] < best_loss:
                best_loss = float(losses[i, j])
                best_a, best_b = float(a), float(b)

    logger.info(f"Fitted Platt scaling a={best_a:.1f} b={best_b:.1f} "
                f"log_loss={best_loss:.4f} on {n} samples")
    return RecalibrationParams(
        a=best_a,
        b=best_b,
        samples=n,
        fitted_at=datetime.utcnow().isoformat(),
    )


def _outcome(row: Dict) -> Optional[int]:
    winner = row.get("actual_winner")
    if winner is None:
        winner = row.get("actual_home_win")
    if isinstance(winner, str):
        label = winner.strip().lower()
        if label in ("home", "1", "true"):
            return 1
        if label in ("away", "0", "false"):
            return 0
        return None
    if winner in (0, 1):
        return int(winner)
    return None


def _probability(row: Dict, key: str = "home_win_probability") -> Optional[float]:
    raw = row.get(key)
    if raw in (None, ""):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    if value > 1:
        value = value / 100
    if value < 0 or value > 1:
        return None
    return value


def validation_pairs(rows: Iterable[Dict]) -> Tuple[List[float], List[int]]:
    """Extract (probability, outcome) pairs, skipping malformed rows."""
    probs: List[float] = []
    outcomes: List[int] = []
    skipped = 0
    for row in rows:
        prob = _probability(row)
        outcome = _outcome(row)
        if prob is None or outcome is None:
            skipped += 1
            continue
        probs.append(prob)
        outcomes.append(outcome)
    if skipped:
        logger.warning(f"Skipped {skipped} malformed validation rows")
    return probs, outcomes


def fit_from_validations(rows: Iterable[Dict], min_samples: int = MIN_SAMPLES) -> RecalibrationParams:
    """
    Fit from validated predictions.

    Each row needs 'home_win_probability' (0-1 or 0-100 scale) and
    'actual_winner' ('home'/'away') or 'actual_home_win' (1/0).
    """
    probs, outcomes = validation_pairs(rows)
    return fit_platt_scaling(probs, outcomes, min_samples=min_samples)


class RecalibrationStore:
    """
    Holds the active recalibration parameters.

    Readers get an immutable RecalibrationParams; swap() replaces the whole
    value under a lock, so a reader never sees a mixed (a, b) pair.
    """

    def __init__(self, params: RecalibrationParams = PASSTHROUGH, path: Optional[Path] = None) -> None:
        self._params = params
        self._path = path
        self._lock = threading.Lock()

    def current(self) -> RecalibrationParams:
        with self._lock:
            return self._params

    def swap(self, params: RecalibrationParams) -> RecalibrationParams:
        """Install new parameters with the next version number."""
        with self._lock:
            installed = replace(params, version=self._params.version + 1)
            self._params = installed
        logger.info(f"Recalibration params swapped to v{installed.version} "
                    f"(a={installed.a}, b={installed.b})")
        return installed

    def reset(self) -> RecalibrationParams:
        return self.swap(PASSTHROUGH)

    def save(self, path: Optional[Path] = None) -> Path:
        if not (path or self._path):
            raise ValueError("No path configured for recalibration params")
        target = Path(path or self._path)
        save_recalibration(target, self.current())
        return target

    @classmethod
    def load(cls, path: Path) -> "RecalibrationStore":
        params = load_recalibration(path)
        return cls(params or PASSTHROUGH, path=path)


def load_recalibration(path: Path) -> Optional[RecalibrationParams]:
    """Read params from JSON; a missing or unreadable file means passthrough."""
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return RecalibrationParams.from_dict(payload)
    except (OSError, json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Ignoring unreadable recalibration file {path}: {e}")
        return None


def save_recalibration(path: Path, params: RecalibrationParams) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(params.to_dict(), indent=2, sort_keys=True), encoding="utf-8")


def calibrate_probabilities(probs: Iterable[float], params: RecalibrationParams) -> List[float]:
    return [apply_platt_scaling(clamp_probability(p), params) for p in probs]
