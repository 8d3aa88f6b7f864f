"""Unit tests for line movement detection and re-prediction decisions."""

import threading
from datetime import timedelta

import pytest

from edgeline.constants import MovementThresholds, Sport, get_sport_profile
from edgeline.models.types import PointEstimatePrediction
from edgeline.monitoring.line_monitor import (
    LineMovement,
    LineMovementMonitor,
    RepredictionLedger,
    RepredictionPolicy,
    closing_line_value,
    compute_movement,
    is_material_change,
    movements_frame,
    summarize_movements,
)
from edgeline.storage.odds_history import LineValues

NBA = get_sport_profile(Sport.NBA).movement


class TestComputeMovement:
    """Tests for line movement between two snapshots."""

    def test_spread_move_significant(self):
        """A 3.5 point spread move is significant for the NBA."""
        movement = compute_movement("evt1", LineValues(spread=-3.0), LineValues(spread=-6.5), NBA)
        assert movement.spread_move == pytest.approx(-3.5)
        assert movement.is_significant is True
        assert movement.direction == "TOWARD_HOME"

    def test_threshold_is_inclusive(self):
        """A move equal to the threshold counts."""
        movement = compute_movement("evt1", LineValues(spread=-3.0), LineValues(spread=-1.0), NBA)
        assert movement.is_significant is True
        assert movement.direction == "TOWARD_AWAY"

    def test_small_moves_not_significant(self):
        """Moves under every threshold are not significant."""
        movement = compute_movement(
            "evt1",
            LineValues(spread=-3.0, total=220.0, home_ml=1.80, away_ml=2.10),
            LineValues(spread=-4.0, total=222.0, home_ml=1.75, away_ml=2.15),
            NBA,
        )
        assert movement.is_significant is False
        assert movement.reasons == []

    def test_total_move(self):
        """Totals moves are reported without a direction."""
        movement = compute_movement("evt1", LineValues(total=220.0), LineValues(total=215.5), NBA)
        assert movement.total_move == pytest.approx(-4.5)
        assert any("total moved" in reason for reason in movement.reasons)
        assert movement.direction == "UNCHANGED"

    def test_moneyline_implied_change(self):
        """Moneyline moves are measured in implied probability points."""
        # -125 (55.6%) -> -250 (71.4%)
        movement = compute_movement(
            "evt1",
            LineValues(home_ml=1.80, away_ml=2.10),
            LineValues(home_ml=1.40, away_ml=3.10),
            NBA,
        )
        assert movement.moneyline_change_pct == pytest.approx(15.87, abs=0.01)
        assert movement.is_significant is True

    def test_missing_values_ignored(self):
        """Lines missing from either snapshot are skipped."""
        movement = compute_movement("evt1", LineValues(spread=-3.0), LineValues(total=220.0), NBA)
        assert movement.spread_move is None
        assert movement.total_move is None
        assert movement.is_significant is False

    def test_hockey_thresholds(self):
        """Hockey uses its own smaller thresholds."""
        nhl = get_sport_profile("nhl").movement
        movement = compute_movement("evt1", LineValues(spread=-1.5), LineValues(spread=-1.0), nhl)
        assert movement.is_significant is True

    def test_to_dict_and_str(self):
        """Movements serialize and print."""
        movement = compute_movement("evt1", LineValues(spread=-3.0), LineValues(spread=-6.5), NBA, "nba")
        payload = movement.to_dict()
        assert payload["spread_move"] == pytest.approx(-3.5)
        assert payload["is_significant"] is True
        assert "SIGNIFICANT" in str(movement)


class TestRepredictionLedger:
    """Tests for re-prediction accounting."""

    def test_acquire_then_cooldown(self, tip_off):
        """A second attempt inside the cooldown is refused."""
        ledger = RepredictionLedger()
        policy = RepredictionPolicy()
        now = tip_off - timedelta(hours=6)

        assert ledger.try_acquire("evt1", now, policy) == (True, None)
        allowed, reason = ledger.try_acquire("evt1", now + timedelta(minutes=10), policy)
        assert allowed is False
        assert "cooldown" in reason
        assert ledger.count("evt1") == 1

    def test_limit(self, tip_off):
        """Attempts stop at the per-event limit."""
        ledger = RepredictionLedger()
        policy = RepredictionPolicy(max_repredictions=3, cooldown_minutes=60)
        start = tip_off - timedelta(hours=8)
        for i in range(3):
            assert ledger.try_acquire("evt1", start + timedelta(minutes=61 * i), policy)[0]
        allowed, reason = ledger.try_acquire("evt1", start + timedelta(hours=5), policy)
        assert allowed is False
        assert "limit" in reason

    def test_external_record_starts_cooldown(self, tip_off):
        """Recording an outside run starts the cooldown."""
        ledger = RepredictionLedger()
        ran_at = tip_off - timedelta(hours=6)
        assert ledger.record("evt1", ran_at) == 1
        assert ledger.last("evt1") == ran_at
        assert "cooldown" in ledger.check("evt1", ran_at + timedelta(minutes=30), RepredictionPolicy())
        assert ledger.check("evt1", ran_at + timedelta(minutes=60), RepredictionPolicy()) is None

    def test_concurrent_acquire_only_once(self, tip_off):
        """Concurrent attempts approve exactly one."""
        ledger = RepredictionLedger()
        policy = RepredictionPolicy()
        now = tip_off - timedelta(hours=6)
        results = []

        def attempt():
            results.append(ledger.try_acquire("evt1", now, policy)[0])

        threads = [threading.Thread(target=attempt) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert results.count(True) == 1
        assert ledger.count("evt1") == 1


class TestLineMovementMonitor:
    """Tests for re-prediction decisions from stored history."""

    def _seed(self, store, tip_off, opening=-3.0, latest=-6.5):
        store.record_snapshot("evt1", LineValues(spread=opening), tip_off,
                              captured_at=tip_off - timedelta(hours=12), sport="nba")
        store.record_snapshot("evt1", LineValues(spread=latest), tip_off,
                              captured_at=tip_off - timedelta(hours=7), sport="nba")

    def test_significant_move_triggers_reprediction(self, odds_store, tip_off):
        """A significant move far from the start triggers a re-prediction."""
        self._seed(odds_store, tip_off)
        monitor = LineMovementMonitor(odds_store)

        decision = monitor.try_reprediction("evt1", "nba", tip_off, now=tip_off - timedelta(hours=6))

        assert decision.should_repredict is True
        assert decision.movement.spread_move == pytest.approx(-3.5)
        assert monitor.ledger.count("evt1") == 1

    def test_second_attempt_within_cooldown_rejected(self, odds_store, tip_off):
        """The cooldown applies across monitor calls."""
        self._seed(odds_store, tip_off)
        monitor = LineMovementMonitor(odds_store)
        now = tip_off - timedelta(hours=6)

        monitor.try_reprediction("evt1", "nba", tip_off, now=now)
        decision = monitor.try_reprediction("evt1", "nba", tip_off, now=now + timedelta(minutes=10))

        assert decision.should_repredict is False
        assert "cooldown" in decision.reasons[0]

    def test_too_close_to_start(self, odds_store, tip_off):
        """Events starting within 30 minutes are left alone."""
        self._seed(odds_store, tip_off)
        monitor = LineMovementMonitor(odds_store)
        decision = monitor.try_reprediction("evt1", "nba", tip_off, now=tip_off - timedelta(minutes=30))
        assert decision.should_repredict is False
        assert "starts in" in decision.reasons[0]
        assert monitor.ledger.count("evt1") == 0

    def test_insignificant_move(self, odds_store, tip_off):
        """Small moves do not trigger."""
        self._seed(odds_store, tip_off, latest=-4.0)
        monitor = LineMovementMonitor(odds_store)
        decision = monitor.evaluate("evt1", "nba", tip_off, now=tip_off - timedelta(hours=6))
        assert decision.should_repredict is False
        assert decision.reasons == ("line movement below thresholds",)

    def test_evaluate_does_not_record(self, odds_store, tip_off):
        """evaluate() never consumes an attempt."""
        self._seed(odds_store, tip_off)
        monitor = LineMovementMonitor(odds_store)
        now = tip_off - timedelta(hours=6)
        assert monitor.evaluate("evt1", "nba", tip_off, now=now).should_repredict
        assert monitor.evaluate("evt1", "nba", tip_off, now=now).should_repredict
        assert monitor.ledger.count("evt1") == 0

    def test_no_history(self, odds_store, tip_off):
        """Events without snapshots never trigger."""
        decision = LineMovementMonitor(odds_store).evaluate("nope", "nba", tip_off, now=tip_off)
        assert decision.should_repredict is False
        assert decision.movement is None

    def test_custom_thresholds(self, odds_store, tip_off):
        """Per-sport thresholds can be overridden."""
        self._seed(odds_store, tip_off, latest=-4.0)
        monitor = LineMovementMonitor(
            odds_store,
            thresholds={Sport.NBA: MovementThresholds(spread=1.0, total=3.0, moneyline_pct=10)},
        )
        assert monitor.movement("evt1", "nba").is_significant is True

    def test_scan_and_summaries(self, odds_store, tip_off):
        """Scans decide per event and summaries count the moves."""
        self._seed(odds_store, tip_off)
        monitor = LineMovementMonitor(odds_store)
        decisions = monitor.scan([("evt1", "nba", tip_off)], now=tip_off - timedelta(hours=6))
        assert [d.should_repredict for d in decisions] == [True]

        movements = monitor.movements("nba")
        summary = summarize_movements(movements)
        assert summary["events"] == 1
        assert summary["significant"] == 1
        assert summary["toward_home"] == 1
        assert summary["max_abs_spread_move"] == pytest.approx(3.5)
        assert list(movements_frame(movements)["event_id"]) == ["evt1"]


class TestRegeneratedPredictions:
    """Tests for replacing predictions after a re-run."""

    def _prediction(self, spread=5.0, confidence=70):
        return PointEstimatePrediction("evt1", 0.65, spread, 224.0, confidence)

    def test_material_spread_change(self):
        """A one point spread change is material."""
        assert is_material_change(self._prediction(), self._prediction(spread=6.0))

    def test_material_confidence_change(self):
        """A six point confidence change is material."""
        assert is_material_change(self._prediction(), self._prediction(confidence=64))

    def test_minor_change(self):
        """Small changes keep the previous prediction."""
        assert not is_material_change(self._prediction(), self._prediction(spread=5.5, confidence=67))

    def test_resolve_regenerated(self, odds_store):
        """Only material changes supersede the previous prediction."""
        monitor = LineMovementMonitor(odds_store)
        previous = self._prediction()

        kept, superseded = monitor.resolve_regenerated(previous, self._prediction(spread=5.5))
        assert kept is previous
        assert superseded is False

        replacement = self._prediction(spread=7.0)
        kept, superseded = monitor.resolve_regenerated(previous, replacement)
        assert kept is replacement
        assert superseded is True


def test_closing_line_value():
    """Beating the close is positive CLV."""
    # Bet at +150 (40%), closed at +120 (45.5%)
    assert closing_line_value(2.50, 2.20) == pytest.approx(5.45, abs=0.01)
    assert closing_line_value(2.20, 2.50) < 0


def test_line_movement_without_reasons_is_not_significant():
    """No reasons means not significant."""
    movement = LineMovement("evt1", "nba", LineValues(), LineValues(), NBA)
    assert movement.is_significant is False
    assert movement.direction == "UNCHANGED"
