"""Line movement detection and re-prediction decisions.

Compares an event's opening line with its closing (or latest) line and
decides whether the model should be re-run. Re-prediction requires a
significant move, fewer than the maximum re-predictions so far, a cooldown
since the last one, and enough time before the event starts.

Usage:
    from edgeline.monitoring.line_monitor import LineMovementMonitor

    monitor = LineMovementMonitor(store)
    decision = monitor.try_reprediction("evt1", "nba", start_time)
    if decision.should_repredict:
        scheduler.regenerate("evt1")
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging
import threading

import pandas as pd

from edgeline.constants import MovementThresholds, Sport, get_sport_profile
from edgeline.exceptions import InvalidOddsError
from edgeline.models.types import ModelPrediction
from edgeline.storage.odds_history import LineValues, OddsHistoryStore, OddsSnapshot, to_utc
from edgeline.utils.odds import decimal_to_implied_prob, implied_change_pct

logger = logging.getLogger(__name__)

MATERIAL_SPREAD_CHANGE = 1.0
MATERIAL_CONFIDENCE_CHANGE = 5.0


@dataclass
class LineMovement:
    """Closing minus opening for each line type of one event."""
    event_id: str
    sport: str
    opening: LineValues
    closing: LineValues
    thresholds: MovementThresholds
    spread_move: Optional[float] = None
    total_move: Optional[float] = None
    moneyline_change_pct: Optional[float] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def is_significant(self) -> bool:
        return bool(self.reasons)

    @property
    def direction(self) -> str:
        """Spread direction from the home side: 'TOWARD_HOME', 'TOWARD_AWAY' or 'UNCHANGED'."""
        if not self.spread_move:
            return "UNCHANGED"
        return "TOWARD_HOME" if self.spread_move < 0 else "TOWARD_AWAY"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "sport": self.sport,
            "opening_spread": self.opening.spread,
            "closing_spread": self.closing.spread,
            "spread_move": self.spread_move,
            "opening_total": self.opening.total,
            "closing_total": self.closing.total,
            "total_move": self.total_move,
            "moneyline_change_pct": self.moneyline_change_pct,
            "direction": self.direction,
            "is_significant": self.is_significant,
            "reasons": list(self.reasons),
        }

    def __str__(self) -> str:
        parts = []
        if self.spread_move is not None:
            parts.append(f"spread {self.opening.spread:+g} -> {self.closing.spread:+g}")
        if self.total_move is not None:
            parts.append(f"total {self.opening.total:g} -> {self.closing.total:g}")
        if self.moneyline_change_pct is not None:
            parts.append(f"ML {self.moneyline_change_pct:.1f}pts")
        flag = " [SIGNIFICANT]" if self.is_significant else ""
        return f"{self.event_id}: " + ", ".join(parts) + flag


def _delta(opening: Optional[float], closing: Optional[float]) -> Optional[float]:
    if opening is None or closing is None:
        return None
    return closing - opening


def _moneyline_change(opening: LineValues, closing: LineValues) -> Optional[float]:
    changes = []
    for side in ("home_ml", "away_ml"):
        before, after = getattr(opening, side), getattr(closing, side)
        if before is None or after is None:
            continue
        try:
            changes.append(implied_change_pct(before, after))
        except InvalidOddsError as e:
            logger.warning(f"Ignoring unusable moneyline in movement check: {e}")
    return max(changes) if changes else None


def compute_movement(
    event_id: str,
    opening: LineValues,
    closing: LineValues,
    thresholds: MovementThresholds,
    sport: str = "other",
) -> LineMovement:
    """Movement per line type and which thresholds it meets."""
    movement = LineMovement(
        event_id=event_id,
        sport=sport,
        opening=opening,
        closing=closing,
        thresholds=thresholds,
        spread_move=_delta(opening.spread, closing.spread),
        total_move=_delta(opening.total, closing.total),
        moneyline_change_pct=_moneyline_change(opening, closing),
    )
    if movement.spread_move is not None and abs(movement.spread_move) >= thresholds.spread:
        movement.reasons.append(
            f"spread moved {movement.spread_move:+.1f} (threshold {thresholds.spread:g})"
        )
    if movement.total_move is not None and abs(movement.total_move) >= thresholds.total:
        movement.reasons.append(
            f"total moved {movement.total_move:+.1f} (threshold {thresholds.total:g})"
        )
    if movement.moneyline_change_pct is not None and movement.moneyline_change_pct >= thresholds.moneyline_pct:
        movement.reasons.append(
            f"moneyline implied probability moved {movement.moneyline_change_pct:.1f}pts "
            f"(threshold {thresholds.moneyline_pct:g})"
        )
    return movement


def closing_line_value(bet_decimal: float, closing_decimal: float) -> float:
    """
    Closing line value in implied-probability points.

    Positive when the bet was placed at a better price than the close.
    """
    return (decimal_to_implied_prob(closing_decimal) - decimal_to_implied_prob(bet_decimal)) * 100


# =============================================================================
# RE-PREDICTION
# =============================================================================

@dataclass(frozen=True)
class RepredictionPolicy:
    max_repredictions: int = 3
    cooldown_minutes: float = 60
    min_minutes_before_start: float = 30


@dataclass(frozen=True)
class RepredictionDecision:
    event_id: str
    should_repredict: bool
    reasons: Tuple[str, ...] = ()
    movement: Optional[LineMovement] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "should_repredict": self.should_repredict,
            "reasons": list(self.reasons),
            "movement": self.movement.to_dict() if self.movement else None,
        }


class RepredictionLedger:
    """Per-event re-prediction counts and times, safe across scheduler threads."""

    def __init__(self) -> None:
        self._counts: Dict[str, int] = {}
        self._last: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def count(self, event_id: str) -> int:
        with self._lock:
            return self._counts.get(event_id, 0)

    def last(self, event_id: str) -> Optional[datetime]:
        with self._lock:
            return self._last.get(event_id)

    def record(self, event_id: str, at: datetime) -> int:
        with self._lock:
            return self._record(event_id, to_utc(at))

    def _record(self, event_id: str, at: datetime) -> int:
        self._counts[event_id] = self._counts.get(event_id, 0) + 1
        self._last[event_id] = at
        return self._counts[event_id]

    def try_acquire(
        self,
        event_id: str,
        now: datetime,
        policy: RepredictionPolicy,
    ) -> Tuple[bool, Optional[str]]:
        """Check count and cooldown and record the attempt in one step."""
        now = to_utc(now)
        with self._lock:
            blocked = self._blocked(event_id, now, policy)
            if blocked:
                return False, blocked
            self._record(event_id, now)
            return True, None

    def check(self, event_id: str, now: datetime, policy: RepredictionPolicy) -> Optional[str]:
        with self._lock:
            return self._blocked(event_id, to_utc(now), policy)

    def _blocked(self, event_id: str, now: datetime, policy: RepredictionPolicy) -> Optional[str]:
        count = self._counts.get(event_id, 0)
        if count >= policy.max_repredictions:
            return f"re-prediction limit reached ({count}/{policy.max_repredictions})"
        last = self._last.get(event_id)
        if last is not None:
            elapsed = (now - last).total_seconds() / 60
            if elapsed < policy.cooldown_minutes:
                return f"cooldown: {elapsed:.0f} min since last re-prediction (< {policy.cooldown_minutes:g})"
        return None


def is_material_change(
    previous: ModelPrediction,
    new: ModelPrediction,
    spread_change: float = MATERIAL_SPREAD_CHANGE,
    confidence_change: float = MATERIAL_CONFIDENCE_CHANGE,
) -> bool:
    """True when the new prediction moves spread by >= 1 or confidence by >= 5."""
    return (
        abs(new.predicted_spread - previous.predicted_spread) >= spread_change
        or abs(new.confidence - previous.confidence) >= confidence_change
    )


class LineMovementMonitor:
    """
    Decide when line moves justify regenerating a prediction.

    Attributes:
        store: Odds snapshot history
        policy: Count, cooldown and start-time limits
        ledger: Re-prediction bookkeeping (shared across threads)
    """

    def __init__(
        self,
        store: OddsHistoryStore,
        policy: Optional[RepredictionPolicy] = None,
        ledger: Optional[RepredictionLedger] = None,
        thresholds: Optional[Dict[Sport, MovementThresholds]] = None,
    ) -> None:
        self.store = store
        self.policy = policy or RepredictionPolicy()
        self.ledger = ledger or RepredictionLedger()
        self._thresholds = dict(thresholds or {})

    def thresholds_for(self, sport) -> MovementThresholds:
        resolved = Sport.from_key(sport)
        return self._thresholds.get(resolved) or get_sport_profile(resolved).movement

    def movement(self, event_id: str, sport="other") -> Optional[LineMovement]:
        opening: Optional[OddsSnapshot] = self.store.opening(event_id)
        closing: Optional[OddsSnapshot] = self.store.closing(event_id)
        if opening is None or closing is None:
            return None
        resolved = Sport.from_key(sport)
        return compute_movement(
            event_id,
            opening.lines,
            closing.lines,
            self.thresholds_for(resolved),
            sport=resolved.value,
        )

    def evaluate(
        self,
        event_id: str,
        sport,
        start_time: datetime,
        now: Optional[datetime] = None,
    ) -> RepredictionDecision:
        """Whether the event is due for re-prediction; records nothing."""
        now = to_utc(now or datetime.utcnow())
        movement, blocked = self._static_checks(event_id, sport, start_time, now)
        if blocked is None:
            blocked = self.ledger.check(event_id, now, self.policy)
        if blocked:
            return RepredictionDecision(event_id, False, (blocked,), movement)
        return RepredictionDecision(event_id, True, tuple(movement.reasons), movement)

    def try_reprediction(
        self,
        event_id: str,
        sport,
        start_time: datetime,
        now: Optional[datetime] = None,
    ) -> RepredictionDecision:
        """Like evaluate(), but records the attempt when it is allowed."""
        now = to_utc(now or datetime.utcnow())
        movement, blocked = self._static_checks(event_id, sport, start_time, now)
        if blocked is None:
            acquired, blocked = self.ledger.try_acquire(event_id, now, self.policy)
        if blocked:
            logger.info(f"Re-prediction for {event_id} rejected: {blocked}")
            return RepredictionDecision(event_id, False, (blocked,), movement)
        logger.info(f"Re-prediction for {event_id} approved: {'; '.join(movement.reasons)}")
        return RepredictionDecision(event_id, True, tuple(movement.reasons), movement)

    def _static_checks(
        self,
        event_id: str,
        sport,
        start_time: datetime,
        now: datetime,
    ) -> Tuple[Optional[LineMovement], Optional[str]]:
        movement = self.movement(event_id, sport)
        if movement is None:
            return None, "no line history"
        if not movement.is_significant:
            return movement, "line movement below thresholds"
        minutes_to_start = (to_utc(start_time) - now).total_seconds() / 60
        if minutes_to_start <= self.policy.min_minutes_before_start:
            return movement, (
                f"event starts in {minutes_to_start:.0f} min "
                f"(<= {self.policy.min_minutes_before_start:g})"
            )
        return movement, None

    def resolve_regenerated(
        self,
        previous: ModelPrediction,
        regenerated: ModelPrediction,
    ) -> Tuple[ModelPrediction, bool]:
        """The prediction that stands, and whether the regenerated one superseded it."""
        if is_material_change(previous, regenerated):
            logger.info(
                f"Prediction {previous.event_id} superseded: spread "
                f"{previous.predicted_spread:+.1f} -> {regenerated.predicted_spread:+.1f}, "
                f"confidence {previous.confidence:.0f} -> {regenerated.confidence:.0f}"
            )
            return regenerated, True
        logger.debug(f"Prediction {previous.event_id} kept; regenerated output not materially different")
        return previous, False

    def scan(
        self,
        events: Iterable[Tuple[str, Any, datetime]],
        now: Optional[datetime] = None,
    ) -> List[RepredictionDecision]:
        """try_reprediction for each (event_id, sport, start_time)."""
        return [self.try_reprediction(event_id, sport, start, now) for event_id, sport, start in events]

    def movements(self, sport="other", event_ids: Optional[Iterable[str]] = None) -> List[LineMovement]:
        ids = list(event_ids) if event_ids is not None else self.store.event_ids()
        results = []
        for event_id in ids:
            movement = self.movement(event_id, sport)
            if movement is not None:
                results.append(movement)
        return results


def summarize_movements(movements: List[LineMovement]) -> Dict[str, Any]:
    """Aggregate counts for dashboards."""
    significant = [m for m in movements if m.is_significant]
    spread_moves = [abs(m.spread_move) for m in movements if m.spread_move is not None]
    return {
        "events": len(movements),
        "significant": len(significant),
        "toward_home": sum(1 for m in movements if m.direction == "TOWARD_HOME"),
        "toward_away": sum(1 for m in movements if m.direction == "TOWARD_AWAY"),
        "avg_abs_spread_move": sum(spread_moves) / len(spread_moves) if spread_moves else 0.0,
        "max_abs_spread_move": max(spread_moves) if spread_moves else 0.0,
    }


def movements_frame(movements: List[LineMovement]) -> pd.DataFrame:
    return pd.DataFrame([m.to_dict() for m in movements])
