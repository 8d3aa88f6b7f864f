"""
SQLite history of market snapshots per event.

The first snapshot stored for an event is its opening line. A snapshot
captured while the event starts within 30 minutes is a closing line; the
previous closing mark is cleared in the same transaction, and partial
unique indexes keep at most one opening and one closing row per event.

Usage:
    from edgeline.storage.odds_history import LineValues, OddsHistoryStore

    store = OddsHistoryStore("odds_history.db")
    store.record_snapshot("evt1", LineValues(spread=-3.0, total=221.5),
                          commence_time=tip_off, captured_at=now)
    opening, closing = store.opening("evt1"), store.closing("evt1")
"""

from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union
import logging
import sqlite3
import threading

import pandas as pd

logger = logging.getLogger(__name__)

CLOSING_WINDOW_MINUTES = 30

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS odds_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id TEXT NOT NULL,
        sport TEXT,
        bookmaker TEXT,
        commence_time TEXT NOT NULL,
        captured_at TEXT NOT NULL,
        spread REAL,
        total REAL,
        home_ml REAL,
        away_ml REAL,
        is_opening INTEGER NOT NULL DEFAULT 0,
        is_closing INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_odds_history_event ON odds_history(event_id, captured_at)",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_odds_history_opening
    ON odds_history(event_id) WHERE is_opening = 1
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_odds_history_closing
    ON odds_history(event_id) WHERE is_closing = 1
    """,
]


def to_utc(value: datetime) -> datetime:
    """Naive UTC datetime; aware values are converted, naive ones assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_time(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        return to_utc(value)
    return to_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


@dataclass(frozen=True)
class LineValues:
    """
    Market state at one moment.

    spread is the home handicap in book convention (negative = home favored);
    moneylines are decimal prices.
    """
    spread: Optional[float] = None
    total: Optional[float] = None
    home_ml: Optional[float] = None
    away_ml: Optional[float] = None


@dataclass(frozen=True)
class OddsSnapshot:
    id: int
    event_id: str
    sport: str
    bookmaker: str
    commence_time: datetime
    captured_at: datetime
    lines: LineValues
    is_opening: bool = False
    is_closing: bool = False

    def to_dict(self) -> Dict:
        payload = asdict(self)
        payload["commence_time"] = self.commence_time.isoformat()
        payload["captured_at"] = self.captured_at.isoformat()
        return payload


def _row_to_snapshot(row: sqlite3.Row) -> OddsSnapshot:
    return OddsSnapshot(
        id=row["id"],
        event_id=row["event_id"],
        sport=row["sport"] or "other",
        bookmaker=row["bookmaker"] or "",
        commence_time=parse_time(row["commence_time"]),
        captured_at=parse_time(row["captured_at"]),
        lines=LineValues(
            spread=row["spread"],
            total=row["total"],
            home_ml=row["home_ml"],
            away_ml=row["away_ml"],
        ),
        is_opening=bool(row["is_opening"]),
        is_closing=bool(row["is_closing"]),
    )


class OddsHistoryStore:
    """Snapshot persistence; ':memory:' keeps a single shared connection."""

    def __init__(self, db_path: Union[str, Path] = ":memory:") -> None:
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._memory_conn: Optional[sqlite3.Connection] = None
        if self.db_path == ":memory:":
            self._memory_conn = self._open()
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, isolation_level=None, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._memory_conn is not None:
                yield self._memory_conn
                return
            conn = self._open()
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_db(self) -> None:
        with self._transaction() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def record_snapshot(
        self,
        event_id: str,
        lines: LineValues,
        commence_time: datetime,
        captured_at: Optional[datetime] = None,
        sport: str = "other",
        bookmaker: str = "consensus",
    ) -> Optional[OddsSnapshot]:
        """
        Store a snapshot, marking opening/closing as appropriate.

        Returns the stored snapshot, or None when the lines are unchanged
        from the latest snapshot and this is not a closing capture.
        """
        captured = to_utc(captured_at or datetime.utcnow())
        commence = to_utc(commence_time)
        minutes_until = (commence - captured).total_seconds() / 60
        is_closing = 0 < minutes_until <= CLOSING_WINDOW_MINUTES

        with self._transaction() as conn:
            latest = conn.execute(
                "SELECT * FROM odds_history WHERE event_id = ? ORDER BY captured_at DESC, id DESC LIMIT 1",
                (event_id,),
            ).fetchone()
            is_opening = latest is None
            if latest is not None and not is_closing:
                previous = _row_to_snapshot(latest).lines
                if previous == lines:
                    logger.debug(f"Skipping unchanged snapshot for {event_id}")
                    return None
            if is_closing:
                conn.execute(
                    "UPDATE odds_history SET is_closing = 0 WHERE event_id = ? AND is_closing = 1",
                    (event_id,),
                )
            cursor = conn.execute(
                """
                INSERT INTO odds_history (
                    event_id, sport, bookmaker, commence_time, captured_at,
                    spread, total, home_ml, away_ml, is_opening, is_closing
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_id, sport, bookmaker, commence.isoformat(), captured.isoformat(),
                    lines.spread, lines.total, lines.home_ml, lines.away_ml,
                    int(is_opening), int(is_closing),
                ),
            )
            row_id = cursor.lastrowid

        if is_opening:
            logger.info(f"Opening line recorded for {event_id}")
        if is_closing:
            logger.info(f"Closing line recorded for {event_id} ({minutes_until:.0f} min to start)")
        return OddsSnapshot(
            id=row_id,
            event_id=event_id,
            sport=sport,
            bookmaker=bookmaker,
            commence_time=commence,
            captured_at=captured,
            lines=lines,
            is_opening=is_opening,
            is_closing=is_closing,
        )

    def finalize_closing(self, now: Optional[datetime] = None) -> int:
        """
        Mark the latest snapshot as closing for started events that have none.

        Covers events whose last pre-start capture fell outside the closing
        window. Returns the number of events marked.
        """
        cutoff = to_utc(now or datetime.utcnow()).isoformat()
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT h.id
                FROM odds_history h
                WHERE h.commence_time <= ?
                  AND NOT EXISTS (
                      SELECT 1 FROM odds_history c
                      WHERE c.event_id = h.event_id AND c.is_closing = 1
                  )
                  AND h.id = (
                      SELECT l.id FROM odds_history l
                      WHERE l.event_id = h.event_id
                      ORDER BY l.captured_at DESC, l.id DESC LIMIT 1
                  )
                """,
                (cutoff,),
            ).fetchall()
            for row in rows:
                conn.execute("UPDATE odds_history SET is_closing = 1 WHERE id = ?", (row["id"],))
        if rows:
            logger.info(f"Marked closing lines for {len(rows)} started events")
        return len(rows)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _one(self, sql: str, params: tuple) -> Optional[OddsSnapshot]:
        with self._connection() as conn:
            row = conn.execute(sql, params).fetchone()
        return _row_to_snapshot(row) if row else None

    def opening(self, event_id: str) -> Optional[OddsSnapshot]:
        return self._one(
            "SELECT * FROM odds_history WHERE event_id = ? AND is_opening = 1",
            (event_id,),
        )

    def latest(self, event_id: str) -> Optional[OddsSnapshot]:
        return self._one(
            "SELECT * FROM odds_history WHERE event_id = ? ORDER BY captured_at DESC, id DESC LIMIT 1",
            (event_id,),
        )

    def closing(self, event_id: str) -> Optional[OddsSnapshot]:
        """Explicit closing snapshot, else the most recent one."""
        explicit = self._one(
            "SELECT * FROM odds_history WHERE event_id = ? AND is_closing = 1",
            (event_id,),
        )
        return explicit or self.latest(event_id)

    def history(self, event_id: str) -> List[OddsSnapshot]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM odds_history WHERE event_id = ? ORDER BY captured_at, id",
                (event_id,),
            ).fetchall()
        return [_row_to_snapshot(row) for row in rows]

    def event_ids(self) -> List[str]:
        with self._connection() as conn:
            rows = conn.execute("SELECT DISTINCT event_id FROM odds_history ORDER BY event_id").fetchall()
        return [row["event_id"] for row in rows]

    def history_frame(self, event_id: Optional[str] = None) -> pd.DataFrame:
        query = "SELECT * FROM odds_history"
        params: tuple = ()
        if event_id:
            query += " WHERE event_id = ?"
            params = (event_id,)
        query += " ORDER BY event_id, captured_at, id"
        with self._connection() as conn:
            cursor = conn.execute(query, params)
            columns = [col[0] for col in cursor.description]
            rows = [tuple(row) for row in cursor.fetchall()]
        return pd.DataFrame(rows, columns=columns)

    def stats(self) -> Dict[str, int]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS snapshots,
                       COUNT(DISTINCT event_id) AS events,
                       COALESCE(SUM(is_opening), 0) AS opening_lines,
                       COALESCE(SUM(is_closing), 0) AS closing_lines
                FROM odds_history
                """
            ).fetchone()
        return {key: int(row[key]) for key in row.keys()}
