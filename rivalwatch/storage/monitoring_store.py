# rivalwatch/storage/monitoring_store.py

"""Append-only storage for snapshots, changes and update events."""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TypeVar

from rivalwatch.config.settings import Settings
from rivalwatch.models.change import DetectedChange
from rivalwatch.models.snapshot import Snapshot
from rivalwatch.models.update_event import UpdateEvent

logger = logging.getLogger("rivalwatch.storage")

_T = TypeVar("_T")


class MonitoringStore(ABC):
    """Repository contract shared by the in-memory and SQLite stores.

    Writes only append; each write enforces its retention cap by
    evicting the oldest records (per competitor for snapshots, global
    for changes and events).  Every read returns newest first.
    """

    # ── Writes ───────────────────────────────────────────

    @abstractmethod
    def save_snapshot(self, snapshot: Snapshot) -> None:
        """Append a snapshot."""
        ...

    @abstractmethod
    def save_change(self, change: DetectedChange) -> None:
        """Append a detected change."""
        ...

    @abstractmethod
    def save_update_events(self, events: Sequence[UpdateEvent]) -> None:
        """Append a batch of update events."""
        ...

    def save_check(
        self,
        snapshot: Snapshot,
        change: DetectedChange | None = None,
        events: Sequence[UpdateEvent] = (),
    ) -> None:
        """Persist everything one check produced in a single call."""
        self.save_snapshot(snapshot)
        if change is not None:
            self.save_change(change)
        if events:
            self.save_update_events(events)

    @abstractmethod
    def clear_all(self) -> None:
        """Drop every snapshot, change and event."""
        ...

    # ── Reads ────────────────────────────────────────────

    @abstractmethod
    def get_snapshots_for_competitor(
        self, competitor_id: str,
    ) -> list[Snapshot]:
        """All retained snapshots of a competitor."""
        ...

    def get_latest_snapshot(
        self, competitor_id: str, url: str,
    ) -> Snapshot | None:
        """Most recent snapshot of *url* for *competitor_id*."""
        for snapshot in self.get_snapshots_for_competitor(competitor_id):
            if snapshot.url == url:
                return snapshot
        return None

    def get_latest_snapshot_with_menu(
        self, competitor_id: str, url: str,
    ) -> Snapshot | None:
        """Latest snapshot, only if it carries menu data."""
        snapshot = self.get_latest_snapshot(competitor_id, url)
        if snapshot is not None and snapshot.menu_items is not None:
            return snapshot
        return None

    @abstractmethod
    def get_changes_for_competitor(
        self, competitor_id: str,
    ) -> list[DetectedChange]:
        """Detected changes of one competitor."""
        ...

    @abstractmethod
    def get_all_changes(self) -> list[DetectedChange]:
        """Every retained change."""
        ...

    @abstractmethod
    def get_update_events_for_competitor(
        self, competitor_id: str,
    ) -> list[UpdateEvent]:
        """Update events of one competitor."""
        ...

    @abstractmethod
    def get_all_update_events(self) -> list[UpdateEvent]:
        """Every retained update event."""
        ...


def _newest_first(
    items: Sequence[_T], key: Callable[[_T], datetime],
) -> list[_T]:
    # reversed() first so equal timestamps keep the later insert on top
    return sorted(reversed(items), key=key, reverse=True)


class InMemoryMonitoringStore(MonitoringStore):
    """Volatile, process-local store (resets on restart)."""

    def __init__(
        self,
        max_snapshots_per_competitor: int = Settings.MAX_SNAPSHOTS_PER_COMPETITOR,
        max_changes: int = Settings.MAX_CHANGES,
        max_events: int = Settings.MAX_UPDATE_EVENTS,
    ) -> None:
        self._snapshots: list[Snapshot] = []
        self._changes: list[DetectedChange] = []
        self._events: list[UpdateEvent] = []
        self._max_snapshots = max_snapshots_per_competitor
        self._max_changes = max_changes
        self._max_events = max_events
        self._lock = threading.Lock()

    # ── Writes ───────────────────────────────────────────

    def save_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshots.append(snapshot)
            owned = [
                s for s in self._snapshots
                if s.competitor_id == snapshot.competitor_id
            ]
            if len(owned) <= self._max_snapshots:
                return
            keep = {
                id(s) for s in _newest_first(
                    owned, lambda s: s.created_at,
                )[: self._max_snapshots]
            }
            before = len(self._snapshots)
            self._snapshots = [
                s for s in self._snapshots
                if s.competitor_id != snapshot.competitor_id
                or id(s) in keep
            ]
            logger.debug(
                "Evicted %d old snapshots for %s",
                before - len(self._snapshots),
                snapshot.competitor_id,
            )

    def save_change(self, change: DetectedChange) -> None:
        with self._lock:
            self._changes.append(change)
            if len(self._changes) > self._max_changes:
                self._changes = list(reversed(_newest_first(
                    self._changes, lambda c: c.detected_at,
                )[: self._max_changes]))

    def save_update_events(self, events: Sequence[UpdateEvent]) -> None:
        with self._lock:
            self._events.extend(events)
            if len(self._events) > self._max_events:
                self._events = list(reversed(_newest_first(
                    self._events, lambda e: e.created_at,
                )[: self._max_events]))
            logger.info(
                "Saved %d update events, total events: %d",
                len(events),
                len(self._events),
            )

    def clear_all(self) -> None:
        with self._lock:
            self._snapshots.clear()
            self._changes.clear()
            self._events.clear()
        logger.info("All monitoring data cleared")

    # ── Reads ────────────────────────────────────────────

    def get_snapshots_for_competitor(
        self, competitor_id: str,
    ) -> list[Snapshot]:
        with self._lock:
            owned = [
                s for s in self._snapshots
                if s.competitor_id == competitor_id
            ]
        return _newest_first(owned, lambda s: s.created_at)

    def get_changes_for_competitor(
        self, competitor_id: str,
    ) -> list[DetectedChange]:
        with self._lock:
            owned = [
                c for c in self._changes
                if c.competitor_id == competitor_id
            ]
        return _newest_first(owned, lambda c: c.detected_at)

    def get_all_changes(self) -> list[DetectedChange]:
        with self._lock:
            changes = list(self._changes)
        return _newest_first(changes, lambda c: c.detected_at)

    def get_update_events_for_competitor(
        self, competitor_id: str,
    ) -> list[UpdateEvent]:
        with self._lock:
            owned = [
                e for e in self._events
                if e.competitor_id == competitor_id
            ]
        return _newest_first(owned, lambda e: e.created_at)

    def get_all_update_events(self) -> list[UpdateEvent]:
        with self._lock:
            events = list(self._events)
        return _newest_first(events, lambda e: e.created_at)
