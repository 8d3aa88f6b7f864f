"""Evaluation harness and recalibration review for validated predictions."""

from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import math

import numpy as np
import pandas as pd

from edgeline.models.calibration import (
    MIN_SAMPLES,
    RecalibrationParams,
    RecalibrationStore,
    apply_platt_scaling,
    fit_platt_scaling,
)
from edgeline.utils.odds import EPSILON, american_to_implied_prob

logger = logging.getLogger(__name__)

PUSH_MARGIN = 0.5
# Largest winner-accuracy drop (percentage points) a refit may cost
ACCURACY_TOLERANCE = 1.0
# Win rate needed to profit at -110
ATS_BREAKEVEN = american_to_implied_prob(-110)


@dataclass(frozen=True)
class ValidatedExample:
    """
    One finished game with the model's pre-game numbers.

    Spreads use the model convention: positive = home margin.
    market_spread uses the book convention: negative = home favored.
    """
    home_win_probability: float
    actual_home_win: int
    predicted_spread: float = 0.0
    actual_spread: float = 0.0
    predicted_total: float = 0.0
    actual_total: float = 0.0
    market_spread: Optional[float] = None
    market_total: Optional[float] = None
    event_id: str = ""

    @property
    def spread_error(self) -> float:
        return abs(self.predicted_spread - self.actual_spread)

    @property
    def total_error(self) -> float:
        return abs(self.predicted_total - self.actual_total)


@dataclass(frozen=True)
class AtsRecord:
    wins: int
    losses: int
    pushes: int

    @property
    def win_rate(self) -> float:
        decided = self.wins + self.losses
        return (self.wins / decided) * 100 if decided else 0.0

    def p_value(self, breakeven: float = ATS_BREAKEVEN) -> Optional[float]:
        """One-sided binomial test of the win rate against the -110 breakeven."""
        decided = self.wins + self.losses
        if not decided:
            return None
        from scipy.stats import binomtest
        return float(binomtest(self.wins, decided, breakeven, alternative="greater").pvalue)


@dataclass(frozen=True)
class OverUnderRecord:
    over_picks: int
    under_picks: int
    correct: int

    @property
    def total(self) -> int:
        return self.over_picks + self.under_picks

    @property
    def accuracy(self) -> float:
        return (self.correct / self.total) * 100 if self.total else 0.0


@dataclass(frozen=True)
class EvaluationReport:
    game_count: int
    brier_score: float
    log_loss: float
    spread_mae: float
    total_mae: float
    winner_accuracy: float
    ats: Optional[AtsRecord] = None
    over_under: Optional[OverUnderRecord] = None

    def to_dict(self) -> Dict:
        payload = asdict(self)
        if self.ats is not None:
            payload["ats"]["win_rate"] = round(self.ats.win_rate, 2)
            payload["ats"]["p_value"] = self.ats.p_value()
        if self.over_under is not None:
            payload["over_under"]["accuracy"] = round(self.over_under.accuracy, 2)
        return payload


@dataclass(frozen=True)
class ReportComparison:
    """Candidate minus baseline; negative Brier/log-loss/MAE deltas are improvements."""
    brier_diff: float
    log_loss_diff: float
    spread_mae_diff: float
    winner_accuracy_diff: float


# =============================================================================
# METRICS
# =============================================================================

def _probs_and_outcomes(examples: Sequence[ValidatedExample]) -> Tuple[np.ndarray, np.ndarray]:
    probs = np.clip(np.array([ex.home_win_probability for ex in examples], dtype=float),
                    EPSILON, 1 - EPSILON)
    outcomes = np.array([ex.actual_home_win for ex in examples], dtype=float)
    return probs, outcomes


def brier_score(examples: Sequence[ValidatedExample]) -> float:
    if not examples:
        return 0.0
    probs, outcomes = _probs_and_outcomes(examples)
    return float(np.mean((probs - outcomes) ** 2))


def log_loss(examples: Sequence[ValidatedExample]) -> float:
    if not examples:
        return 0.0
    probs, outcomes = _probs_and_outcomes(examples)
    return float(-np.mean(outcomes * np.log(probs) + (1 - outcomes) * np.log(1 - probs)))


def winner_accuracy(examples: Sequence[ValidatedExample]) -> float:
    """Percent of games where p >= 0.5 picked the home winner correctly."""
    if not examples:
        return 0.0
    correct = sum(
        1 for ex in examples
        if (1 if ex.home_win_probability >= 0.5 else 0) == ex.actual_home_win
    )
    return (correct / len(examples)) * 100


def spread_mae(examples: Sequence[ValidatedExample]) -> float:
    if not examples:
        return 0.0
    return float(np.mean([ex.spread_error for ex in examples]))


def total_mae(examples: Sequence[ValidatedExample]) -> float:
    if not examples:
        return 0.0
    return float(np.mean([ex.total_error for ex in examples]))


def ats_record(examples: Sequence[ValidatedExample]) -> Optional[AtsRecord]:
    """
    Against-the-spread record over games with a market spread.

    The book line is negated into the model convention. The model bets home
    when predicted_spread > 0; |cover| < 0.5 is a push.
    """
    with_market = [ex for ex in examples if ex.market_spread is not None]
    if not with_market:
        return None
    wins = losses = pushes = 0
    for ex in with_market:
        line = -ex.market_spread
        if ex.predicted_spread > 0:
            cover = ex.actual_spread - line
        else:
            cover = line - ex.actual_spread
        if abs(cover) < PUSH_MARGIN:
            pushes += 1
        elif cover > 0:
            wins += 1
        else:
            losses += 1
    return AtsRecord(wins=wins, losses=losses, pushes=pushes)


def over_under_record(examples: Sequence[ValidatedExample]) -> Optional[OverUnderRecord]:
    with_market = [ex for ex in examples if ex.market_total is not None]
    if not with_market:
        return None
    over_picks = under_picks = correct = 0
    for ex in with_market:
        if ex.predicted_total > ex.market_total:
            over_picks += 1
            if ex.actual_total > ex.market_total:
                correct += 1
        else:
            under_picks += 1
            if ex.actual_total < ex.market_total:
                correct += 1
    return OverUnderRecord(over_picks=over_picks, under_picks=under_picks, correct=correct)


def run_evaluation(examples: Sequence[ValidatedExample]) -> EvaluationReport:
    examples = list(examples)
    return EvaluationReport(
        game_count=len(examples),
        brier_score=brier_score(examples),
        log_loss=log_loss(examples),
        spread_mae=spread_mae(examples),
        total_mae=total_mae(examples),
        winner_accuracy=winner_accuracy(examples),
        ats=ats_record(examples),
        over_under=over_under_record(examples),
    )


def compare_reports(baseline: EvaluationReport, candidate: EvaluationReport) -> ReportComparison:
    return ReportComparison(
        brier_diff=candidate.brier_score - baseline.brier_score,
        log_loss_diff=candidate.log_loss - baseline.log_loss,
        spread_mae_diff=candidate.spread_mae - baseline.spread_mae,
        winner_accuracy_diff=candidate.winner_accuracy - baseline.winner_accuracy,
    )


def should_adopt(
    baseline: EvaluationReport,
    candidate: EvaluationReport,
    accuracy_tolerance: float = ACCURACY_TOLERANCE,
) -> bool:
    """Adopt when log loss improves, Brier does not worsen, and accuracy holds."""
    diff = compare_reports(baseline, candidate)
    return (
        diff.log_loss_diff < 0
        and diff.brier_diff <= 0
        and diff.winner_accuracy_diff >= -accuracy_tolerance
    )


# =============================================================================
# RECALIBRATION REVIEW
# =============================================================================

def recalibrated_examples(
    examples: Sequence[ValidatedExample],
    params: RecalibrationParams,
) -> List[ValidatedExample]:
    return [
        replace(ex, home_win_probability=apply_platt_scaling(ex.home_win_probability, params))
        for ex in examples
    ]


def evaluate_recalibration(
    examples: Sequence[ValidatedExample],
    params: RecalibrationParams,
) -> Tuple[EvaluationReport, EvaluationReport]:
    """Reports for raw probabilities and for the same probabilities recalibrated."""
    return run_evaluation(examples), run_evaluation(recalibrated_examples(examples, params))


@dataclass(frozen=True)
class RefitOutcome:
    params: RecalibrationParams
    adopted: bool
    baseline: EvaluationReport
    candidate: EvaluationReport
    comparison: ReportComparison
    reason: str


def refit_recalibration(
    store: RecalibrationStore,
    examples: Sequence[ValidatedExample],
    min_samples: int = MIN_SAMPLES,
    accuracy_tolerance: float = ACCURACY_TOLERANCE,
) -> RefitOutcome:
    """
    Fit new Platt params and swap them in only if the harness says they help.

    The baseline is the currently active params applied to the raw
    probabilities; the candidate is the new fit applied to the same rows.
    """
    examples = list(examples)
    active = store.current()
    fitted = fit_platt_scaling(
        [ex.home_win_probability for ex in examples],
        [ex.actual_home_win for ex in examples],
        min_samples=min_samples,
    )
    baseline = run_evaluation(recalibrated_examples(examples, active))
    candidate = run_evaluation(recalibrated_examples(examples, fitted))
    comparison = compare_reports(baseline, candidate)

    if len(examples) < min_samples:
        reason = f"insufficient samples ({len(examples)} < {min_samples})"
        adopted = False
    elif should_adopt(baseline, candidate, accuracy_tolerance):
        reason = f"log loss {comparison.log_loss_diff:+.4f}, brier {comparison.brier_diff:+.4f}"
        adopted = True
    else:
        reason = "no improvement over active params"
        adopted = False

    if adopted:
        fitted = store.swap(fitted)
        logger.info(f"Recalibration adopted: {reason}")
    else:
        logger.info(f"Recalibration not adopted: {reason}")
    return RefitOutcome(
        params=fitted,
        adopted=adopted,
        baseline=baseline,
        candidate=candidate,
        comparison=comparison,
        reason=reason,
    )


# =============================================================================
# LOADING
# =============================================================================

def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _home_win(row: Dict) -> Optional[int]:
    winner = row.get("actual_winner")
    if isinstance(winner, str) and winner.strip():
        label = winner.strip().lower()
        if label in ("home", "away"):
            return 1 if label == "home" else 0
    value = _optional_float(row.get("actual_home_win"))
    if value in (0.0, 1.0):
        return int(value)
    return None


def examples_from_rows(rows: Iterable[Dict]) -> List[ValidatedExample]:
    """
    Build examples from dict rows, skipping rows without a probability or result.

    home_win_probability may be on a 0-1 or 0-100 scale.
    """
    examples = []
    skipped = 0
    for row in rows:
        prob = _optional_float(row.get("home_win_probability"))
        outcome = _home_win(row)
        if prob is None or outcome is None:
            skipped += 1
            continue
        if prob > 1:
            prob = prob / 100
        examples.append(
            ValidatedExample(
                home_win_probability=prob,
                actual_home_win=outcome,
                predicted_spread=_optional_float(row.get("predicted_spread")) or 0.0,
                actual_spread=_optional_float(row.get("actual_spread")) or 0.0,
                predicted_total=_optional_float(row.get("predicted_total")) or 0.0,
                actual_total=_optional_float(row.get("actual_total")) or 0.0,
                market_spread=_optional_float(row.get("market_spread")),
                market_total=_optional_float(row.get("market_total")),
                event_id=str(row.get("event_id") or ""),
            )
        )
    if skipped:
        logger.warning(f"Skipped {skipped} validation rows without probability or result")
    return examples


def examples_from_frame(frame: pd.DataFrame) -> List[ValidatedExample]:
    return examples_from_rows(frame.to_dict(orient="records"))


def load_validations(path: Path) -> List[ValidatedExample]:
    """Load validated predictions from CSV or JSON."""
    if path.suffix.lower() == ".json":
        frame = pd.read_json(path)
    else:
        frame = pd.read_csv(path)
    logger.info(f"Loaded {len(frame)} validation rows from {path}")
    return examples_from_frame(frame)


def report_frame(reports: Dict[str, EvaluationReport]) -> pd.DataFrame:
    """Side-by-side table of headline metrics, one row per labelled report."""
    rows = []
    for label, report in reports.items():
        rows.append({
            "label": label,
            "games": report.game_count,
            "brier": report.brier_score,
            "log_loss": report.log_loss,
            "winner_accuracy": report.winner_accuracy,
            "spread_mae": report.spread_mae,
            "total_mae": report.total_mae,
            "ats_win_rate": report.ats.win_rate if report.ats else None,
            "ou_accuracy": report.over_under.accuracy if report.over_under else None,
        })
    return pd.DataFrame(rows)
