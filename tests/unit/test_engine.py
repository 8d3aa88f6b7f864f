"""End-to-end tests for event analysis and batch runs."""

import pytest

from edgeline.models.calibration import RecalibrationParams
from edgeline.models.engine import EngineSettings, analyze_event, analyze_events
from edgeline.models.types import MarketType, PointEstimatePrediction, Side, ValueTier


def _find(recs, market, side):
    matches = [r for r in recs if r.market == market and r.side == side]
    return matches[0] if matches else None


class TestAnalyzeEvent:
    """Tests for analyzing a single event."""

    def test_home_moneyline_recommended(self, sample_event, sample_prediction, metrics):
        """The 1.80 / 65% reference bet comes through end to end."""
        analysis = analyze_event(sample_event, sample_prediction, metrics=metrics)

        home_ml = _find(analysis.recommendations, MarketType.MONEYLINE, Side.HOME)
        assert home_ml is not None
        assert home_ml.edge == pytest.approx(0.0944, abs=1e-3)
        assert home_ml.american_odds == -125
        assert home_ml.confidence == 50
        assert home_ml.value_tier == ValueTier.MEDIUM
        assert home_ml.discrepancy_warning is None
        assert home_ml.bookmaker == "FanDuel"

    def test_no_bets_against_the_model(self, sample_event, sample_prediction):
        """Sides the model does not favor are never recommended."""
        recs = analyze_event(sample_event, sample_prediction).recommendations
        assert _find(recs, MarketType.MONEYLINE, Side.AWAY) is None
        assert _find(recs, MarketType.SPREAD, Side.AWAY) is None
        assert _find(recs, MarketType.TOTAL, Side.UNDER) is None

    def test_ranked_by_edge(self, sample_event, sample_prediction):
        """Recommendations come out in edge order."""
        recs = analyze_event(sample_event, sample_prediction).recommendations
        for earlier, later in zip(recs, recs[1:]):
            assert earlier.edge >= later.edge - 0.005

    def test_confidence_floor_skips_moneyline(self, sample_event, sample_prediction):
        """The confidence floor drops spreads and totals but not moneylines."""
        settings = EngineSettings(min_confidence=60)
        recs = analyze_event(sample_event, sample_prediction, settings=settings).recommendations
        assert [(r.market, r.side) for r in recs] == [(MarketType.MONEYLINE, Side.HOME)]

    def test_simulation_spread_reduces_confidence(self, sample_event, simulated_prediction):
        """Wide simulated intervals cut confidence."""
        recs = analyze_event(sample_event, simulated_prediction).recommendations

        home_ml = _find(recs, MarketType.MONEYLINE, Side.HOME)
        # Spread CI of 30 is past the filter width; moneyline follows the spread
        assert home_ml.confidence == 20
        assert _find(recs, MarketType.SPREAD, Side.HOME) is None

    def test_recalibration_changes_model_probability(self, sample_event, sample_prediction):
        """Active recalibration params change the moneyline probability."""
        shrunk = analyze_event(
            sample_event, sample_prediction, params=RecalibrationParams(a=0.5, b=0.0)
        ).recommendations
        home_ml = _find(shrunk, MarketType.MONEYLINE, Side.HOME)
        # 0.65 shrinks to about 0.577, still above the 0.556 implied
        assert home_ml is not None
        assert home_ml.model_probability == pytest.approx(0.577, abs=1e-3)

    def test_longshot_gated(self, metrics, event_factory, bookmaker_factory):
        """A longshot the model loves is gated to the hard band."""
        event = event_factory(bookmakers=[bookmaker_factory("FanDuel", home_ml=1.10, away_ml=8.0)])
        prediction = PointEstimatePrediction("evt1", 0.55, 1.0, 220.0, 70)

        recs = analyze_event(event, prediction, metrics=metrics).recommendations

        away_ml = _find(recs, MarketType.MONEYLINE, Side.AWAY)
        assert away_ml.edge == pytest.approx(0.325)
        assert away_ml.confidence == 41
        assert away_ml.discrepancy_warning is not None
        assert metrics.counter("gate.hard") == 1

    def test_multiple_books_consolidated(self, sample_prediction, event_factory, bookmaker_factory):
        """Three books collapse into one recommendation at the best price."""
        event = event_factory(bookmakers=[
            bookmaker_factory("FanDuel", home_ml=1.80, away_ml=2.10),
            bookmaker_factory("DraftKings", home_ml=1.85, away_ml=2.05),
            bookmaker_factory("BetMGM", home_ml=1.83, away_ml=2.05),
        ])
        recs = analyze_event(event, sample_prediction).recommendations

        assert len(recs) == 1
        assert recs[0].bookmaker == "3 books"
        assert recs[0].decimal_odds == 1.85

    def test_event_without_books(self, sample_prediction, event_factory):
        """No books, no candidates."""
        analysis = analyze_event(event_factory(), sample_prediction)
        assert analysis.recommendations == []
        assert analysis.candidates == 0


class TestAnalyzeEvents:
    """Tests for batch runs."""

    def test_missing_prediction_is_an_error(self, sample_event, sample_prediction, metrics, event_factory):
        """An event without a prediction fails alone."""
        other = event_factory("evt2", bookmakers=sample_event["bookmakers"])
        result = analyze_events([sample_event, other], {"evt1": sample_prediction}, metrics=metrics)

        assert set(result.analyses) == {"evt1"}
        assert "evt2" in result.errors
        assert metrics.counter("events.failed") == 1
        assert result.recommendations

    def test_thread_pool_matches_sequential(self, sample_event, sample_prediction, event_factory):
        """Threaded and sequential batches agree."""
        events = [event_factory(f"evt{i}", bookmakers=sample_event["bookmakers"]) for i in range(1, 6)]
        predictions = {
            event["id"]: PointEstimatePrediction(event["id"], 0.65, 5.0, 224.0, 70)
            for event in events
        }

        sequential = analyze_events(events, predictions)
        threaded = analyze_events(events, predictions, settings=EngineSettings(max_workers=4))

        assert set(threaded.analyses) == set(sequential.analyses)
        assert len(threaded.recommendations) == len(sequential.recommendations)
        assert not threaded.errors


class TestContradictoryViews:
    """Tests for probability and margin disagreeing on the favorite."""

    def test_moneyline_follows_margin_when_views_disagree(self, event_factory, bookmaker_factory):
        """Probability favors away, margin favors home: no away moneyline next to a home spread."""
        event = event_factory(bookmakers=[
            bookmaker_factory("FanDuel", home_ml=1.80, away_ml=2.10, spread=(-1.5, 1.91, 1.91)),
        ])
        prediction = PointEstimatePrediction("evt1", 0.35, 6.0, 224.0, 70)

        analysis = analyze_event(event, prediction)

        picks = {(r.market, r.side) for r in analysis.recommendations}
        assert (MarketType.SPREAD, Side.HOME) in picks
        assert (MarketType.MONEYLINE, Side.AWAY) not in picks
        assert any("favor different sides" in w for w in analysis.warnings)

    def test_agreeing_views_price_both_moneylines(self, sample_event, sample_prediction, metrics):
        """Agreeing views contradict nothing."""
        analyze_event(sample_event, sample_prediction, metrics=metrics)
        assert metrics.counter("quotes.contradicted") == 0


class TestMalformedPrices:
    """Tests for bad prices inside event payloads."""

    def test_infinite_price_skips_quote(self, sample_event, sample_prediction, metrics):
        """A non-finite price is a malformed quote, not an event failure."""
        sample_event["bookmakers"][0]["markets"][0]["outcomes"][0]["price"] = float("inf")

        analysis = analyze_event(sample_event, sample_prediction, metrics=metrics)

        assert analysis.skipped_quotes == 1
        assert metrics.counter("quotes.skipped") == 1
        assert not [r for r in analysis.recommendations if r.market == MarketType.MONEYLINE]
        assert _find(analysis.recommendations, MarketType.SPREAD, Side.HOME) is not None

    def test_infinite_price_in_one_event_keeps_batch(self, sample_event, sample_prediction, event_factory,
                                                    bookmaker_factory):
        """An infinite price in one event leaves the rest of the batch intact."""
        other = event_factory("evt2", bookmakers=[
            bookmaker_factory("FanDuel", home_ml=1.80, away_ml=float("inf")),
        ])
        predictions = {
            "evt1": sample_prediction,
            "evt2": PointEstimatePrediction("evt2", 0.65, 5.0, 224.0, 70),
        }

        result = analyze_events([sample_event, other], predictions)

        assert set(result.analyses) == {"evt1", "evt2"}
        assert result.analyses["evt2"].skipped_quotes == 1
        assert not result.errors

    def test_bad_event_does_not_abort_batch(self, sample_event, sample_prediction, event_factory):
        """An unexpected failure in one event is recorded, not raised."""
        bad = event_factory("evt2", bookmakers=[{"title": "Broken", "markets": "not-a-list"}])
        predictions = {
            "evt1": sample_prediction,
            "evt2": PointEstimatePrediction("evt2", 0.65, 5.0, 224.0, 70),
        }

        result = analyze_events([sample_event, bad], predictions)

        assert "evt1" in result.analyses
        assert "evt2" in result.errors
