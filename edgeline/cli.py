"""CLI entry points for the disagreement engine."""

from pathlib import Path
from typing import Dict, List, Optional, Sequence
import argparse
import json
import logging
import sys

from edgeline.config import Config
from edgeline.constants import Sport
from edgeline.exceptions import EdgeLineError, SchemaValidationError
from edgeline.models.calibration import RecalibrationStore
from edgeline.models.engine import analyze_events
from edgeline.models.types import ModelPrediction, prediction_from_dict
from edgeline.monitoring.line_monitor import LineMovementMonitor
from edgeline.normalization.overrides import OverrideRegistry
from edgeline.normalization.schema import validate_table
from edgeline.ops import get_metrics_recorder
from edgeline.ops.logging import configure_logging
from edgeline.reporting.csv_output import recommendation_rows, write_recommendations_csv
from edgeline.review import evaluate_recalibration, load_validations, refit_recalibration, report_frame
from edgeline.runtime.manifest import RunManifest, config_hash
from edgeline.storage import JsonStorage, LineValues, OddsHistoryStore
from edgeline.storage.odds_history import parse_time

logger = logging.getLogger(__name__)


def _load_json(path: str):
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _print_json(payload) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n")


def _start_run(command: str, config_path: Optional[str]):
    config = Config.load(config_path)
    manifest = RunManifest(command=command)
    manifest.config_hash = config_hash(config.to_dict())
    configure_logging(run_id=manifest.run_id)
    return config, manifest


def _write_manifest(manifest: RunManifest, storage: JsonStorage) -> str:
    manifest.finish()
    path = storage.write_table(f"manifest_{manifest.run_id}", manifest.to_dict())
    logger.info(f"Run manifest written to {path}")
    return path


def _load_predictions(path: str) -> Dict[str, ModelPrediction]:
    payload = _load_json(path)
    if isinstance(payload, dict):
        payload = payload.get("predictions", [])
    if not isinstance(payload, list):
        raise SchemaValidationError("predictions must be a list")
    predictions = {}
    for idx, row in enumerate(payload):
        try:
            validate_table("predictions", [row])
            prediction = prediction_from_dict(row)
        except SchemaValidationError as e:
            get_metrics_recorder().increment("predictions.skipped")
            logger.warning(f"Skipping prediction row {idx}: {e}")
            continue
        predictions[prediction.event_id] = prediction
    return predictions


def run_recommend(
    events_path: str,
    predictions_path: str,
    sport: Optional[str] = None,
    csv_path: Optional[str] = None,
    config_path: Optional[str] = None,
) -> int:
    config, manifest = _start_run("recommend", config_path)
    metrics = get_metrics_recorder()
    storage = JsonStorage(config.output_dir)

    try:
        events = _load_json(events_path)
        if isinstance(events, dict):
            events = events.get("events", [])
        validate_table("events", events)
        predictions = _load_predictions(predictions_path)
    except (OSError, json.JSONDecodeError, EdgeLineError, ValueError) as e:
        logger.error(f"Unable to load inputs: {e}")
        return 1
    manifest.inputs.update({"events": events_path, "predictions": predictions_path})

    store = RecalibrationStore.load(Path(config.recalibration_path))
    params = store.current()
    manifest.recalibration_version = params.version
    registry = None
    if config.match_overrides_path:
        registry = OverrideRegistry.from_file(Path(config.match_overrides_path))

    resolved_sport = Sport.from_key(sport or config.default_sport)
    result = analyze_events(
        events,
        predictions,
        sport=resolved_sport,
        params=params,
        settings=config.engine_settings(),
        registry=registry,
        metrics=metrics,
    )

    recommendations = result.recommendations
    manifest.counts.update({
        "events": len(events),
        "analyzed": len(result.analyses),
        "failed": len(result.errors),
        "recommendations": len(recommendations),
    })
    warnings = {event_id: a.warnings for event_id, a in result.analyses.items() if a.warnings}
    manifest.outputs["recommendations"] = storage.write_table(
        f"recommendations_{manifest.run_id}",
        recommendation_rows(recommendations),
    )
    if warnings or result.errors:
        manifest.outputs["warnings"] = storage.write_table(
            f"warnings_{manifest.run_id}",
            {"warnings": warnings, "errors": result.errors},
        )
    manifest.outputs["metrics"] = storage.write_table(f"metrics_{manifest.run_id}", metrics.snapshot())

    if csv_path:
        manifest.outputs["csv"] = str(write_recommendations_csv(recommendations, csv_path))
    else:
        _print_json(recommendation_rows(recommendations))
    _write_manifest(manifest, storage)

    if events and not result.analyses:
        logger.error("Every event failed; see warnings output")
        return 1
    return 0


def run_calibrate(
    validations_path: str,
    adopt: bool = False,
    config_path: Optional[str] = None,
) -> int:
    config, manifest = _start_run("calibrate", config_path)
    storage = JsonStorage(config.output_dir)
    try:
        examples = load_validations(Path(validations_path))
    except (OSError, ValueError) as e:
        logger.error(f"Unable to load validations: {e}")
        return 1
    manifest.inputs["validations"] = validations_path

    recalibration_path = Path(config.recalibration_path)
    store = RecalibrationStore.load(recalibration_path)
    outcome = refit_recalibration(store, examples, min_samples=config.recalibration_min_samples)
    summary = {
        "adopted": outcome.adopted,
        "reason": outcome.reason,
        "params": outcome.params.to_dict(),
        "baseline": outcome.baseline.to_dict(),
        "candidate": outcome.candidate.to_dict(),
    }
    if outcome.adopted and adopt:
        manifest.outputs["recalibration"] = str(store.save(recalibration_path))
    elif outcome.adopted:
        logger.info("Pass --adopt to persist the new recalibration params")
    manifest.recalibration_version = store.current().version
    manifest.counts["samples"] = len(examples)
    manifest.outputs["summary"] = storage.write_table(f"calibration_{manifest.run_id}", summary)
    _print_json(summary)
    _write_manifest(manifest, storage)
    return 0


def run_evaluate(validations_path: str, config_path: Optional[str] = None) -> int:
    config, manifest = _start_run("evaluate", config_path)
    storage = JsonStorage(config.output_dir)
    try:
        examples = load_validations(Path(validations_path))
    except (OSError, ValueError) as e:
        logger.error(f"Unable to load validations: {e}")
        return 1
    manifest.inputs["validations"] = validations_path

    params = RecalibrationStore.load(Path(config.recalibration_path)).current()
    raw, recalibrated = evaluate_recalibration(examples, params)
    reports = {"raw": raw}
    if not params.is_passthrough:
        reports[f"recalibrated_v{params.version}"] = recalibrated
    table = report_frame(reports)
    logger.info("Evaluation summary:\n" + table.to_string(index=False))
    payload = {label: report.to_dict() for label, report in reports.items()}
    manifest.counts["games"] = raw.game_count
    manifest.outputs["evaluation"] = storage.write_table(f"evaluation_{manifest.run_id}", payload)
    _print_json(payload)
    _write_manifest(manifest, storage)
    return 0


def run_snapshot(
    db_path: Optional[str],
    event_id: str,
    start: str,
    sport: Optional[str] = None,
    spread: Optional[float] = None,
    total: Optional[float] = None,
    home_ml: Optional[float] = None,
    away_ml: Optional[float] = None,
    bookmaker: str = "consensus",
    config_path: Optional[str] = None,
) -> int:
    config, _ = _start_run("snapshot", config_path)
    store = OddsHistoryStore(db_path or config.odds_history_db)
    try:
        snapshot = store.record_snapshot(
            event_id,
            LineValues(spread=spread, total=total, home_ml=home_ml, away_ml=away_ml),
            commence_time=parse_time(start),
            sport=Sport.from_key(sport or config.default_sport).value,
            bookmaker=bookmaker,
        )
    finally:
        store.close()
    _print_json(snapshot.to_dict() if snapshot else {"event_id": event_id, "stored": False})
    return 0


def run_movement(
    db_path: Optional[str],
    event_ids: List[str],
    start: Optional[str] = None,
    sport: Optional[str] = None,
    config_path: Optional[str] = None,
) -> int:
    config, _ = _start_run("movement", config_path)
    resolved_sport = Sport.from_key(sport or config.default_sport)
    store = OddsHistoryStore(db_path or config.odds_history_db)
    try:
        monitor = LineMovementMonitor(store, policy=config.reprediction_policy())
        if start is None:
            movements = monitor.movements(resolved_sport, event_ids or None)
            _print_json([m.to_dict() for m in movements])
            return 0
        start_time = parse_time(start)
        decisions = [monitor.evaluate(event_id, resolved_sport, start_time) for event_id in event_ids]
    finally:
        store.close()
    _print_json([d.to_dict() for d in decisions])
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Market-model disagreement engine CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    recommend = subparsers.add_parser("recommend", help="Price events against model predictions")
    recommend.add_argument("--config", dest="config_path", help="Path to config file")
    recommend.add_argument("--events", dest="events_path", required=True, help="Odds events JSON")
    recommend.add_argument("--predictions", dest="predictions_path", required=True, help="Predictions JSON")
    recommend.add_argument("--sport", dest="sport", help="Sport key (nba, ncaab, nfl, nhl, mlb)")
    recommend.add_argument("--csv", dest="csv_path", help="Write recommendations CSV instead of JSON")

    calibrate = subparsers.add_parser("calibrate", help="Refit Platt recalibration params")
    calibrate.add_argument("--config", dest="config_path", help="Path to config file")
    calibrate.add_argument("--validations", dest="validations_path", required=True,
                           help="Validated predictions (CSV or JSON)")
    calibrate.add_argument("--adopt", action="store_true", help="Persist params when they improve results")

    evaluate = subparsers.add_parser("evaluate", help="Score validated predictions")
    evaluate.add_argument("--config", dest="config_path", help="Path to config file")
    evaluate.add_argument("--validations", dest="validations_path", required=True,
                          help="Validated predictions (CSV or JSON)")

    snapshot = subparsers.add_parser("snapshot", help="Record a line snapshot")
    snapshot.add_argument("--config", dest="config_path", help="Path to config file")
    snapshot.add_argument("--db", dest="db_path", help="Odds history database")
    snapshot.add_argument("--event", dest="event_id", required=True)
    snapshot.add_argument("--start", dest="start", required=True, help="Event start (ISO 8601)")
    snapshot.add_argument("--sport", dest="sport")
    snapshot.add_argument("--spread", type=float, help="Home spread, negative when home is favored")
    snapshot.add_argument("--total", type=float)
    snapshot.add_argument("--home-ml", dest="home_ml", type=float, help="Home moneyline (decimal)")
    snapshot.add_argument("--away-ml", dest="away_ml", type=float, help="Away moneyline (decimal)")
    snapshot.add_argument("--bookmaker", default="consensus")

    movement = subparsers.add_parser("movement", help="Report line movement and re-prediction decisions")
    movement.add_argument("--config", dest="config_path", help="Path to config file")
    movement.add_argument("--db", dest="db_path", help="Odds history database")
    movement.add_argument("--event", dest="event_ids", action="append", default=[],
                          help="Event id (can be repeated; all events when omitted)")
    movement.add_argument("--sport", dest="sport")
    movement.add_argument("--start", dest="start",
                          help="Event start (ISO 8601); enables re-prediction decisions")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "recommend":
        return run_recommend(
            events_path=args.events_path,
            predictions_path=args.predictions_path,
            sport=getattr(args, "sport", None),
            csv_path=getattr(args, "csv_path", None),
            config_path=getattr(args, "config_path", None),
        )
    if args.command == "calibrate":
        return run_calibrate(
            validations_path=args.validations_path,
            adopt=getattr(args, "adopt", False),
            config_path=getattr(args, "config_path", None),
        )
    if args.command == "evaluate":
        return run_evaluate(
            validations_path=args.validations_path,
            config_path=getattr(args, "config_path", None),
        )
    if args.command == "snapshot":
        return run_snapshot(
            db_path=getattr(args, "db_path", None),
            event_id=args.event_id,
            start=args.start,
            sport=getattr(args, "sport", None),
            spread=getattr(args, "spread", None),
            total=getattr(args, "total", None),
            home_ml=getattr(args, "home_ml", None),
            away_ml=getattr(args, "away_ml", None),
            bookmaker=getattr(args, "bookmaker", "consensus"),
            config_path=getattr(args, "config_path", None),
        )
    if args.command == "movement":
        if args.start and not args.event_ids:
            parser.error("--start requires at least one --event")
        return run_movement(
            db_path=getattr(args, "db_path", None),
            event_ids=list(args.event_ids),
            start=getattr(args, "start", None),
            sport=getattr(args, "sport", None),
            config_path=getattr(args, "config_path", None),
        )

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
