"""Unit tests for the SQLite odds snapshot history."""

import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone

import pytest

from edgeline.storage.odds_history import LineValues, OddsHistoryStore, parse_time


class TestRecordSnapshot:
    """Tests for recording line snapshots."""

    def test_first_snapshot_is_opening(self, odds_store, tip_off, hours_before):
        """The first capture for an event is its opening line."""
        snapshot = odds_store.record_snapshot(
            "evt1", LineValues(spread=-3.0, total=221.5), tip_off, captured_at=hours_before(10)
        )
        assert snapshot.is_opening is True
        assert snapshot.is_closing is False
        assert odds_store.opening("evt1").lines.spread == -3.0

    def test_unchanged_lines_skipped(self, odds_store, tip_off, hours_before):
        """Identical lines outside the closing window are not stored."""
        lines = LineValues(spread=-3.0, total=221.5)
        odds_store.record_snapshot("evt1", lines, tip_off, captured_at=hours_before(10))
        assert odds_store.record_snapshot("evt1", lines, tip_off, captured_at=hours_before(8)) is None
        assert len(odds_store.history("evt1")) == 1

    def test_changed_lines_stored(self, odds_store, tip_off, hours_before):
        """A changed line is stored after the opening."""
        odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off, captured_at=hours_before(10))
        snapshot = odds_store.record_snapshot("evt1", LineValues(spread=-4.0), tip_off,
                                              captured_at=hours_before(8))
        assert snapshot is not None
        assert snapshot.is_opening is False
        assert odds_store.opening("evt1").lines.spread == -3.0
        assert odds_store.latest("evt1").lines.spread == -4.0

    def test_closing_window(self, odds_store, tip_off, hours_before):
        """Captures inside the last 30 minutes are closing lines."""
        odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off, captured_at=hours_before(10))
        closing = odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off,
                                             captured_at=hours_before(minutes=20))
        # Closing captures are stored even when unchanged
        assert closing is not None
        assert closing.is_closing is True

    def test_single_closing_row(self, odds_store, tip_off, hours_before):
        """Only the newest closing capture stays flagged."""
        odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off, captured_at=hours_before(10))
        odds_store.record_snapshot("evt1", LineValues(spread=-5.0), tip_off, captured_at=hours_before(minutes=25))
        odds_store.record_snapshot("evt1", LineValues(spread=-6.5), tip_off, captured_at=hours_before(minutes=5))

        flagged = [s for s in odds_store.history("evt1") if s.is_closing]
        assert len(flagged) == 1
        assert odds_store.closing("evt1").lines.spread == -6.5

    def test_started_event_not_closing(self, odds_store, tip_off):
        """Captures after the start are never closing lines."""
        snapshot = odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off,
                                              captured_at=tip_off + timedelta(minutes=5))
        assert snapshot.is_closing is False

    def test_closing_falls_back_to_latest(self, odds_store, tip_off, hours_before):
        """Without a flagged close the latest line is used."""
        odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off, captured_at=hours_before(10))
        odds_store.record_snapshot("evt1", LineValues(spread=-4.5), tip_off, captured_at=hours_before(3))
        assert odds_store.closing("evt1").lines.spread == -4.5

    def test_unknown_event(self, odds_store):
        """Unknown events have no lines."""
        assert odds_store.opening("nope") is None
        assert odds_store.closing("nope") is None
        assert odds_store.history("nope") == []

    def test_aware_times_normalized(self, odds_store):
        """Timezone-aware times are stored as naive UTC."""
        start = datetime(2026, 1, 15, 0, 30, tzinfo=timezone.utc)
        captured = datetime(2026, 1, 14, 19, 15, tzinfo=timezone(timedelta(hours=-5)))
        snapshot = odds_store.record_snapshot("evt1", LineValues(total=220.0), start, captured_at=captured)
        # 19:15 at UTC-5 is 00:15 UTC, 15 minutes before the start
        assert snapshot.captured_at == datetime(2026, 1, 15, 0, 15)
        assert snapshot.is_closing is True


class TestFinalizeClosing:
    """Tests for marking closing lines after the start."""

    def test_marks_latest_for_started_events(self, odds_store, tip_off, hours_before):
        """Started events get their latest line flagged once."""
        odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off, captured_at=hours_before(10))
        odds_store.record_snapshot("evt1", LineValues(spread=-4.0), tip_off, captured_at=hours_before(2))
        odds_store.record_snapshot("evt2", LineValues(spread=1.0), tip_off + timedelta(days=1),
                                   captured_at=hours_before(2))

        marked = odds_store.finalize_closing(now=tip_off + timedelta(hours=1))

        assert marked == 1
        closing = [s for s in odds_store.history("evt1") if s.is_closing]
        assert len(closing) == 1
        assert closing[0].lines.spread == -4.0
        assert odds_store.finalize_closing(now=tip_off + timedelta(hours=2)) == 0


class TestStoreReads:
    """Tests for store summaries and frames."""

    def test_stats_and_frame(self, odds_store, tip_off, hours_before):
        """Stats count snapshots and the frame keeps capture order."""
        odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off, captured_at=hours_before(10))
        odds_store.record_snapshot("evt1", LineValues(spread=-4.0), tip_off, captured_at=hours_before(9))
        odds_store.record_snapshot("evt2", LineValues(spread=2.0), tip_off, captured_at=hours_before(9))

        stats = odds_store.stats()
        assert stats == {"snapshots": 3, "events": 2, "opening_lines": 2, "closing_lines": 0}
        assert odds_store.event_ids() == ["evt1", "evt2"]

        frame = odds_store.history_frame("evt1")
        assert len(frame) == 2
        assert list(frame["spread"]) == [-3.0, -4.0]

    def test_file_database_across_threads(self, tip_off, hours_before):
        """A file database accepts writes from several threads."""
        with tempfile.TemporaryDirectory() as tmpdir:
            store = OddsHistoryStore(os.path.join(tmpdir, "sub", "odds.db"))

            def record(i):
                store.record_snapshot(f"evt{i}", LineValues(spread=float(-i)), tip_off,
                                      captured_at=hours_before(10))

            threads = [threading.Thread(target=record, args=(i,)) for i in range(8)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            assert store.stats()["opening_lines"] == 8
            reopened = OddsHistoryStore(os.path.join(tmpdir, "sub", "odds.db"))
            assert len(reopened.event_ids()) == 8

    def test_snapshot_to_dict(self, odds_store, tip_off, hours_before):
        """Snapshots serialize with ISO times."""
        snapshot = odds_store.record_snapshot("evt1", LineValues(spread=-3.0), tip_off,
                                              captured_at=hours_before(10))
        payload = snapshot.to_dict()
        assert payload["lines"]["spread"] == -3.0
        assert payload["commence_time"] == "2026-01-15T00:30:00"


def test_parse_time_accepts_z_suffix():
    """Trailing Z is read as UTC."""
    assert parse_time("2026-01-15T00:30:00Z") == datetime(2026, 1, 15, 0, 30)
