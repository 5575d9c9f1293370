# rivalwatch/storage/sqlite_store.py

"""SQLite-backed monitoring store that survives restarts."""

import json
import logging
import sqlite3
import threading
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from rivalwatch.config.settings import Settings
from rivalwatch.models.change import DetectedChange
from rivalwatch.models.snapshot import MenuItem, Snapshot
from rivalwatch.models.update_event import UpdateEvent, UpdateEventPayload
from rivalwatch.storage.monitoring_store import MonitoringStore

logger = logging.getLogger("rivalwatch.storage")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS snapshots (
    id              TEXT PRIMARY KEY,
    competitor_id   TEXT NOT NULL,
    url             TEXT NOT NULL,
    title           TEXT NOT NULL,
    normalized_text TEXT NOT NULL,
    content_hash    TEXT NOT NULL,
    menu_items      TEXT,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_competitor_date
    ON snapshots(competitor_id, created_at);

CREATE TABLE IF NOT EXISTS changes (
    id                  TEXT PRIMARY KEY,
    competitor_id       TEXT NOT NULL,
    url                 TEXT NOT NULL,
    old_snapshot_id     TEXT NOT NULL,
    new_snapshot_id     TEXT NOT NULL,
    change_type         TEXT NOT NULL,
    severity            TEXT NOT NULL,
    before_excerpt      TEXT NOT NULL,
    after_excerpt       TEXT NOT NULL,
    similarity_score    REAL NOT NULL,
    diff_summary        TEXT NOT NULL,
    rationale           TEXT,
    recommended_actions TEXT NOT NULL DEFAULT '[]',
    detected_at         TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_changes_date
    ON changes(detected_at);

CREATE TABLE IF NOT EXISTS update_events (
    id              TEXT PRIMARY KEY,
    competitor_id   TEXT NOT NULL,
    competitor_name TEXT NOT NULL,
    url             TEXT NOT NULL,
    type            TEXT NOT NULL,
    payload         TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_date
    ON update_events(created_at);
"""

_SNAPSHOT_COLUMNS = (
    "id, competitor_id, url, title, normalized_text, "
    "content_hash, menu_items, created_at"
)
_CHANGE_COLUMNS = (
    "id, competitor_id, url, old_snapshot_id, new_snapshot_id, "
    "change_type, severity, before_excerpt, after_excerpt, "
    "similarity_score, diff_summary, rationale, "
    "recommended_actions, detected_at"
)
_EVENT_COLUMNS = (
    "id, competitor_id, competitor_name, url, type, payload, created_at"
)


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _row_to_snapshot(r: tuple[Any, ...]) -> Snapshot:
    menu_items: tuple[MenuItem, ...] | None = None
    if r[6] is not None:
        menu_items = tuple(MenuItem.from_dict(d) for d in json.loads(r[6]))
    return Snapshot(
        id=r[0],
        competitor_id=r[1],
        url=r[2],
        title=r[3],
        normalized_text=r[4],
        content_hash=r[5],
        menu_items=menu_items,
        created_at=datetime.fromisoformat(r[7]),
    )


def _row_to_change(r: tuple[Any, ...]) -> DetectedChange:
    return DetectedChange(
        id=r[0],
        competitor_id=r[1],
        url=r[2],
        old_snapshot_id=r[3],
        new_snapshot_id=r[4],
        change_type=r[5],
        severity=r[6],
        before_excerpt=r[7],
        after_excerpt=r[8],
        similarity_score=r[9],
        diff_summary=r[10],
        rationale=r[11],
        recommended_actions=tuple(json.loads(r[12])),
        detected_at=datetime.fromisoformat(r[13]),
    )


def _row_to_event(r: tuple[Any, ...]) -> UpdateEvent:
    return UpdateEvent(
        id=r[0],
        competitor_id=r[1],
        competitor_name=r[2],
        url=r[3],
        type=r[4],
        payload=UpdateEventPayload.from_dict(json.loads(r[5])),
        created_at=datetime.fromisoformat(r[6]),
    )


class SqliteMonitoringStore(MonitoringStore):
    """SQLite-backed store with the same retention caps as the
    in-memory one.  ``save_check`` writes in one transaction."""

    def __init__(
        self,
        db_path: Path | None = None,
        max_snapshots_per_competitor: int = Settings.MAX_SNAPSHOTS_PER_COMPETITOR,
        max_changes: int = Settings.MAX_CHANGES,
        max_events: int = Settings.MAX_UPDATE_EVENTS,
    ) -> None:
        path = db_path or Settings.MONITORING_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()
        self._max_snapshots = max_snapshots_per_competitor
        self._max_changes = max_changes
        self._max_events = max_events
        logger.debug("SqliteMonitoringStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ── Inserts (no commit) ──────────────────────────────

    def _insert_snapshot(self, cur: sqlite3.Cursor, s: Snapshot) -> None:
        menu_json = (
            json.dumps([item.to_dict() for item in s.menu_items])
            if s.menu_items is not None
            else None
        )
        cur.execute(
            f"INSERT INTO snapshots ({_SNAPSHOT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                s.id, s.competitor_id, s.url, s.title,
                s.normalized_text, s.content_hash, menu_json,
                _ts(s.created_at),
            ),
        )
        cur.execute(
            "DELETE FROM snapshots WHERE competitor_id = ? "
            "AND rowid NOT IN ("
            "  SELECT rowid FROM snapshots WHERE competitor_id = ? "
            "  ORDER BY created_at DESC, rowid DESC LIMIT ?"
            ")",
            (s.competitor_id, s.competitor_id, self._max_snapshots),
        )

    def _insert_change(self, cur: sqlite3.Cursor, c: DetectedChange) -> None:
        cur.execute(
            f"INSERT INTO changes ({_CHANGE_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                c.id, c.competitor_id, c.url, c.old_snapshot_id,
                c.new_snapshot_id, c.change_type, c.severity,
                c.before_excerpt, c.after_excerpt, c.similarity_score,
                c.diff_summary, c.rationale,
                json.dumps(list(c.recommended_actions)),
                _ts(c.detected_at),
            ),
        )
        cur.execute(
            "DELETE FROM changes WHERE rowid NOT IN ("
            "  SELECT rowid FROM changes "
            "  ORDER BY detected_at DESC, rowid DESC LIMIT ?"
            ")",
            (self._max_changes,),
        )

    def _insert_events(
        self, cur: sqlite3.Cursor, events: Sequence[UpdateEvent],
    ) -> None:
        cur.executemany(
            f"INSERT INTO update_events ({_EVENT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    e.id, e.competitor_id, e.competitor_name, e.url,
                    e.type, json.dumps(e.payload.to_dict()),
                    _ts(e.created_at),
                )
                for e in events
            ],
        )
        cur.execute(
            "DELETE FROM update_events WHERE rowid NOT IN ("
            "  SELECT rowid FROM update_events "
            "  ORDER BY created_at DESC, rowid DESC LIMIT ?"
            ")",
            (self._max_events,),
        )

    # ── Writes ───────────────────────────────────────────

    def save_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock, self._conn:
            self._insert_snapshot(self._conn.cursor(), snapshot)

    def save_change(self, change: DetectedChange) -> None:
        with self._lock, self._conn:
            self._insert_change(self._conn.cursor(), change)

    def save_update_events(self, events: Sequence[UpdateEvent]) -> None:
        if not events:
            return
        with self._lock, self._conn:
            self._insert_events(self._conn.cursor(), events)
        logger.info("Saved %d update events", len(events))

    def save_check(
        self,
        snapshot: Snapshot,
        change: DetectedChange | None = None,
        events: Sequence[UpdateEvent] = (),
    ) -> None:
        with self._lock, self._conn:
            cur = self._conn.cursor()
            self._insert_snapshot(cur, snapshot)
            if change is not None:
                self._insert_change(cur, change)
            if events:
                self._insert_events(cur, events)
        logger.debug(
            "Saved check for %s (change=%s, events=%d)",
            snapshot.competitor_id,
            change is not None,
            len(events),
        )

    def clear_all(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM snapshots")
            self._conn.execute("DELETE FROM changes")
            self._conn.execute("DELETE FROM update_events")
        logger.info("All monitoring data cleared")

    # ── Querying ─────────────────────────────────────────

    def _fetch(
        self, sql: str, params: tuple[Any, ...] = (),
    ) -> list[tuple[Any, ...]]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def get_snapshots_for_competitor(
        self, competitor_id: str,
    ) -> list[Snapshot]:
        rows = self._fetch(
            f"SELECT {_SNAPSHOT_COLUMNS} FROM snapshots "
            "WHERE competitor_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (competitor_id,),
        )
        return [_row_to_snapshot(r) for r in rows]

    def get_latest_snapshot(
        self, competitor_id: str, url: str,
    ) -> Snapshot | None:
        rows = self._fetch(
            f"SELECT {_SNAPSHOT_COLUMNS} FROM snapshots "
            "WHERE competitor_id = ? AND url = ? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (competitor_id, url),
        )
        return _row_to_snapshot(rows[0]) if rows else None

    def get_changes_for_competitor(
        self, competitor_id: str,
    ) -> list[DetectedChange]:
        rows = self._fetch(
            f"SELECT {_CHANGE_COLUMNS} FROM changes "
            "WHERE competitor_id = ? "
            "ORDER BY detected_at DESC, rowid DESC",
            (competitor_id,),
        )
        return [_row_to_change(r) for r in rows]

    def get_all_changes(self) -> list[DetectedChange]:
        rows = self._fetch(
            f"SELECT {_CHANGE_COLUMNS} FROM changes "
            "ORDER BY detected_at DESC, rowid DESC",
        )
        return [_row_to_change(r) for r in rows]

    def get_update_events_for_competitor(
        self, competitor_id: str,
    ) -> list[UpdateEvent]:
        rows = self._fetch(
            f"SELECT {_EVENT_COLUMNS} FROM update_events "
            "WHERE competitor_id = ? "
            "ORDER BY created_at DESC, rowid DESC",
            (competitor_id,),
        )
        return [_row_to_event(r) for r in rows]

    def get_all_update_events(self) -> list[UpdateEvent]:
        rows = self._fetch(
            f"SELECT {_EVENT_COLUMNS} FROM update_events "
            "ORDER BY created_at DESC, rowid DESC",
        )
        return [_row_to_event(r) for r in rows]
