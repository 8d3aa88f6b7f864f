"""
Recommendation pipeline for one event or a batch of events.

Per event:
1. Resolve book outcomes to sides (team matcher)
2. Recalibrate the model win probability and build one PredictedMargin;
   if the probability and the margin favor different sides, only the
   margin favorite is priced on the moneyline
3. Price each quote; keep edges above the minimum
4. Weight confidence by simulated uncertainty, then gate moneyline outliers
5. Consolidate books, admit spread/total bets by confidence, rank

Events are independent. In a batch a failing event is logged and recorded
without stopping the others.

Usage:
    from edgeline.models.engine import EngineSettings, analyze_event

    analysis = analyze_event(event, prediction, sport="nba", params=store.current())
    for rec in analysis.recommendations:
        print(rec.label, rec.edge, rec.confidence)
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence
import logging
import time

from edgeline.constants import Sport, SportProfile, get_sport_profile
from edgeline.exceptions import EdgeLineError, InvalidOddsError
from edgeline.models.calibration import PASSTHROUGH, RecalibrationParams
from edgeline.models.consolidation import RANK_TIE_TOLERANCE, consolidate, rank_recommendations
from edgeline.models.edge import MIN_EDGE, PredictedMargin, build_candidate
from edgeline.models.sanity_gate import apply_sanity_gate
from edgeline.models.types import BetCandidate, MarketType, ModelPrediction, Recommendation
from edgeline.models.uncertainty import apply_uncertainty, prediction_multiplier
from edgeline.normalization.overrides import OverrideRegistry
from edgeline.normalization.team_matcher import EventQuotes, parse_event_quotes
from edgeline.ops.metrics import MetricsRecorder, get_metrics_recorder

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 45


@dataclass(frozen=True)
class EngineSettings:
    min_edge: float = MIN_EDGE
    min_confidence: int = MIN_CONFIDENCE
    rank_tie_tolerance: float = RANK_TIE_TOLERANCE
    suppress_low_confidence: bool = False
    spread_std_dev: Dict[str, float] = field(default_factory=dict)
    total_std_dev: Dict[str, float] = field(default_factory=dict)
    max_workers: int = 1

    def profile_for(self, sport) -> SportProfile:
        resolved = Sport.from_key(sport)
        return get_sport_profile(
            resolved,
            spread_std_dev=self.spread_std_dev.get(resolved.value),
            total_std_dev=self.total_std_dev.get(resolved.value),
        )


@dataclass
class EventAnalysis:
    event_id: str
    recommendations: List[Recommendation] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    candidates: int = 0
    skipped_quotes: int = 0


@dataclass
class BatchResult:
    analyses: Dict[str, EventAnalysis] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def recommendations(self) -> List[Recommendation]:
        rows: List[Recommendation] = []
        for analysis in self.analyses.values():
            rows.extend(analysis.recommendations)
        return rows


def _admit(rec: Recommendation, settings: EngineSettings) -> bool:
    # Moneyline bets only need the edge filter applied earlier
    if rec.market == MarketType.MONEYLINE:
        return True
    return rec.confidence >= settings.min_confidence


def _price_quotes(
    parsed: EventQuotes,
    prediction: ModelPrediction,
    margin: PredictedMargin,
    profile: SportProfile,
    settings: EngineSettings,
    metrics: MetricsRecorder,
) -> List[BetCandidate]:
    candidates = []
    for quote in parsed.quotes:
        if margin.contradicts_margin(quote.market, quote.side):
            metrics.increment("quotes.contradicted")
            continue
        try:
            candidate = build_candidate(quote, margin, prediction.confidence, settings.min_edge)
        except (InvalidOddsError, ValueError, OverflowError) as e:
            parsed.skipped += 1
            metrics.increment("quotes.skipped")
            logger.warning(f"Skipping quote {quote.bookmaker} {quote.label} for {parsed.event_id}: {e}")
            continue
        if candidate is None:
            continue

        multiplier = prediction_multiplier(prediction, candidate.market, profile)
        if multiplier < 1.0:
            weighted = apply_uncertainty(candidate.confidence, multiplier)
            candidate.notes.append(
                f"confidence x{multiplier:.2f} for simulation spread ({candidate.confidence} -> {weighted})"
            )
            candidate.confidence = weighted

        gate = apply_sanity_gate(candidate)
        if gate.triggered:
            metrics.increment(f"gate.{gate.band}")

        match = parsed.match_for(quote)
        if match is not None and match.potential_reversal and candidate.discrepancy_warning is None:
            candidate.discrepancy_warning = (
                f"{quote.bookmaker} outcomes may be listed in reverse order; verify the side"
            )
        candidates.append(candidate)
    return candidates


def analyze_event(
    event: Mapping,
    prediction: ModelPrediction,
    sport=Sport.OTHER,
    params: RecalibrationParams = PASSTHROUGH,
    settings: Optional[EngineSettings] = None,
    registry: Optional[OverrideRegistry] = None,
    metrics: Optional[MetricsRecorder] = None,
) -> EventAnalysis:
    """
    Ranked recommendations for a single event.

    Args:
        event: Odds API-style event payload
        prediction: Model prediction for the same event
        sport: Sport member or key; selects thresholds and std devs
        params: Recalibration params in effect for this call
        settings: Engine thresholds (defaults when omitted)
        registry: Team match override registry
        metrics: Metrics recorder

    Returns:
        EventAnalysis with ranked recommendations and surfaced warnings
    """
    settings = settings or EngineSettings()
    metrics = metrics or get_metrics_recorder()
    start = time.perf_counter()

    profile = settings.profile_for(sport)
    parsed = parse_event_quotes(
        dict(event),
        registry=registry,
        suppress_low_confidence=settings.suppress_low_confidence,
        metrics=metrics,
    )
    margin = PredictedMargin.from_prediction(prediction, profile, params)
    if margin.views_disagree:
        parsed.warnings.append(
            f"win probability {margin.home_win_probability:.1%} and margin "
            f"{margin.home_margin:+.1f} favor different sides; "
            f"moneyline limited to {margin.margin_favorite.value}"
        )
    candidates = _price_quotes(parsed, prediction, margin, profile, settings, metrics)

    consolidated = consolidate(candidates)
    admitted = [rec for rec in consolidated if _admit(rec, settings)]
    dropped = len(consolidated) - len(admitted)
    if dropped:
        logger.debug(f"{parsed.event_id}: {dropped} spread/total bets below confidence "
                     f"{settings.min_confidence}")

    metrics.timing("engine.analyze_event", (time.perf_counter() - start) * 1000)
    metrics.increment("recommendations.emitted", len(admitted))
    return EventAnalysis(
        event_id=parsed.event_id,
        recommendations=rank_recommendations(admitted, settings.rank_tie_tolerance),
        warnings=list(parsed.warnings),
        candidates=len(candidates),
        skipped_quotes=parsed.skipped,
    )


def analyze_events(
    events: Sequence[Mapping],
    predictions: Mapping[str, ModelPrediction],
    sport=Sport.OTHER,
    params: RecalibrationParams = PASSTHROUGH,
    settings: Optional[EngineSettings] = None,
    registry: Optional[OverrideRegistry] = None,
    metrics: Optional[MetricsRecorder] = None,
) -> BatchResult:
    """
    Analyze a batch; one event's failure never aborts the others.

    Events without a prediction are recorded as errors. With
    settings.max_workers > 1 events run on a thread pool.
    """
    settings = settings or EngineSettings()
    metrics = metrics or get_metrics_recorder()
    result = BatchResult()

    def _run(event: Mapping):
        event_id = str(event.get("id", "unknown"))
        prediction = predictions.get(event_id)
        if prediction is None:
            raise EdgeLineError(f"No prediction for event {event_id}")
        return analyze_event(event, prediction, sport, params, settings, registry, metrics)

    def _collect(event: Mapping, future_or_call) -> None:
        event_id = str(event.get("id", "unknown"))
        try:
            analysis = future_or_call()
        except EdgeLineError as e:
            metrics.increment("events.failed")
            logger.error(f"Event {event_id} failed: {e}")
            result.errors[event_id] = str(e)
            return
        except Exception as e:
            metrics.increment("events.failed")
            logger.exception(f"Event {event_id} failed unexpectedly: {e}")
            result.errors[event_id] = str(e)
            return
        result.analyses[analysis.event_id] = analysis

    if settings.max_workers > 1 and len(events) > 1:
        with ThreadPoolExecutor(max_workers=settings.max_workers) as pool:
            futures = [(event, pool.submit(_run, event)) for event in events]
            for event, future in futures:
                _collect(event, future.result)
    else:
        for event in events:
            _collect(event, lambda event=event: _run(event))

    logger.info(f"Analyzed {len(result.analyses)} events "
                f"({len(result.errors)} failed, {len(result.recommendations)} recommendations)")
    return result
