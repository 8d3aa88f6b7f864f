"""
Pytest configuration and shared fixtures for engine tests.
"""

import pytest
from datetime import datetime, timedelta

from edgeline.models.types import PointEstimatePrediction, SimulatedPrediction, SimulationSummary
from edgeline.normalization.overrides import OverrideRegistry
from edgeline.ops.metrics import InMemoryMetricsRecorder
from edgeline.storage.odds_history import OddsHistoryStore


def make_bookmaker(title, home_ml=None, away_ml=None, spread=None, total=None,
                   home_name="Boston Celtics", away_name="Miami Heat"):
    """Odds API-style bookmaker block. spread is (home_point, home_price, away_price)."""
    markets = []
    if home_ml is not None and away_ml is not None:
        markets.append({
            "key": "h2h",
            "outcomes": [
                {"name": away_name, "price": away_ml},
                {"name": home_name, "price": home_ml},
            ],
        })
    if spread is not None:
        home_point, home_price, away_price = spread
        markets.append({
            "key": "spreads",
            "outcomes": [
                {"name": away_name, "price": away_price, "point": -home_point},
                {"name": home_name, "price": home_price, "point": home_point},
            ],
        })
    if total is not None:
        line, over_price, under_price = total
        markets.append({
            "key": "totals",
            "outcomes": [
                {"name": "Over", "price": over_price, "point": line},
                {"name": "Under", "price": under_price, "point": line},
            ],
        })
    return {"key": title.lower(), "title": title, "markets": markets}


def make_event(event_id="evt1", bookmakers=None, away_team="Miami Heat", home_team="Boston Celtics"):
    return {
        "id": event_id,
        "sport_key": "basketball_nba",
        "commence_time": "2026-01-15T00:30:00Z",
        "away_team": away_team,
        "home_team": home_team,
        "bookmakers": bookmakers or [],
    }


@pytest.fixture
def sample_event():
    """One event with moneyline, spread and total from a single book."""
    return make_event(bookmakers=[
        make_bookmaker(
            "FanDuel",
            home_ml=1.80,
            away_ml=2.10,
            spread=(-3.5, 1.91, 1.91),
            total=(221.5, 1.91, 1.91),
        ),
    ])


@pytest.fixture
def sample_prediction():
    """Home favored: 65% to win, by 5 points, 70 model confidence."""
    return PointEstimatePrediction(
        event_id="evt1",
        home_win_probability=0.65,
        predicted_spread=5.0,
        predicted_total=224.0,
        confidence=70,
    )


@pytest.fixture
def simulated_prediction():
    return SimulatedPrediction(
        event_id="evt1",
        home_win_probability=0.65,
        predicted_spread=5.0,
        predicted_total=224.0,
        confidence=70,
        simulation=SimulationSummary(
            spread_ci_width=30.0,
            total_ci_width=18.0,
            home_score_range=(100.0, 130.0),
            away_score_range=(95.0, 125.0),
            iterations=10000,
        ),
    )


@pytest.fixture
def metrics():
    return InMemoryMetricsRecorder()


@pytest.fixture
def empty_registry():
    return OverrideRegistry()


@pytest.fixture
def odds_store():
    store = OddsHistoryStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def tip_off():
    """Event start used by line history tests."""
    return datetime(2026, 1, 15, 0, 30)


@pytest.fixture
def hours_before(tip_off):
    def _at(hours=0.0, minutes=0.0):
        return tip_off - timedelta(hours=hours, minutes=minutes)
    return _at


@pytest.fixture
def event_factory():
    """make_event as a fixture, for tests that build their own payloads."""
    return make_event


@pytest.fixture
def bookmaker_factory():
    return make_bookmaker
