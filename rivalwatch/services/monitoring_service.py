# rivalwatch/services/monitoring_service.py

"""Runs change and menu checks against competitors and persists results."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rivalwatch.config.settings import Settings
from rivalwatch.detection.change_detector import detect_change
from rivalwatch.detection.similarity import compute_similarity
from rivalwatch.enrichment.change_enricher import (
    ChangeEnricher,
    apply_classification,
)
from rivalwatch.errors import EnrichmentError, InvalidCheckRequest
from rivalwatch.models.change import DetectedChange
from rivalwatch.models.competitor import Competitor, load_competitors
from rivalwatch.models.snapshot import Snapshot
from rivalwatch.models.update_event import (
    PRICE_CHANGED,
    PRODUCT_ADDED,
    UpdateEvent,
)
from rivalwatch.monitoring.menu_differ import (
    diff_menus,
    filter_events_by_type,
)
from rivalwatch.monitoring.snapshot_builder import SnapshotBuilder
from rivalwatch.services.dashboard_stats import (
    DashboardStats,
    compute_dashboard_stats,
)
from rivalwatch.storage.monitoring_store import MonitoringStore

logger = logging.getLogger("rivalwatch.monitoring")

FIRST_SNAPSHOT = "First snapshot created"
NO_CHANGES = "No changes detected"
CHANGE_DETECTED = "Change detected"

OVERVIEW_SNAPSHOT_LIMIT = 10


@dataclass
class ChangeCheckResult:
    """Outcome of one whole-page change check."""

    snapshot: Snapshot
    message: str
    change: DetectedChange | None = None
    similarity: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "change": self.change.to_dict() if self.change else None,
            "snapshot": self.snapshot.to_dict(),
            "message": self.message,
        }
        if self.similarity is not None:
            data["similarity"] = self.similarity
        return data


@dataclass
class MenuCheckResult:
    """Per-competitor outcome of a menu check (events or an error)."""

    competitor_id: str
    competitor_name: str
    events: list[UpdateEvent] = field(
        default_factory=lambda: list[UpdateEvent]()
    )
    message: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "competitorId": self.competitor_id,
            "competitorName": self.competitor_name,
        }
        if self.error is not None:
            data["error"] = self.error
            return data
        data["events"] = [e.to_dict() for e in self.events]
        data["message"] = self.message
        return data


@dataclass
class MenuCheckReport:
    """Container for a completed menu check across competitors."""

    checked_at: datetime
    total_events: int = 0
    results: list[MenuCheckResult] = field(
        default_factory=lambda: list[MenuCheckResult]()
    )

    @property
    def errors(self) -> list[str]:
        return [r.error for r in self.results if r.error is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkedAt": self.checked_at.isoformat(),
            "totalEvents": self.total_events,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class UpdatesFeed:
    """Update events, newest first, also split by event type."""

    events: list[UpdateEvent]

    @property
    def product_updates(self) -> list[UpdateEvent]:
        return filter_events_by_type(self.events, PRODUCT_ADDED)

    @property
    def price_updates(self) -> list[UpdateEvent]:
        return filter_events_by_type(self.events, PRICE_CHANGED)

    @property
    def total(self) -> int:
        return len(self.events)

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": [e.to_dict() for e in self.events],
            "productUpdates": [e.to_dict() for e in self.product_updates],
            "priceUpdates": [e.to_dict() for e in self.price_updates],
            "total": self.total,
        }


@dataclass
class CompetitorOverview:
    """Changes of one competitor grouped by type, plus recent snapshots."""

    competitor_id: str
    changes: list[DetectedChange]
    snapshots: list[Snapshot]

    def changes_of_type(self, change_type: str) -> list[DetectedChange]:
        return [c for c in self.changes if c.change_type == change_type]

    @property
    def last_snapshot(self) -> Snapshot | None:
        return self.snapshots[0] if self.snapshots else None

    def to_dict(self) -> dict[str, Any]:
        product = self.changes_of_type("product")
        pricing = self.changes_of_type("pricing")
        other = self.changes_of_type("other")
        last = self.last_snapshot
        return {
            "changes": {
                "all": [c.to_dict() for c in self.changes],
                "product": [c.to_dict() for c in product],
                "pricing": [c.to_dict() for c in pricing],
                "other": [c.to_dict() for c in other],
            },
            "snapshots": [s.to_dict() for s in self.snapshots],
            "stats": {
                "totalChanges": len(self.changes),
                "productChanges": len(product),
                "pricingChanges": len(pricing),
                "otherChanges": len(other),
                "lastSnapshot": last.to_dict() if last else None,
            },
        }


class MonitoringService:
    """Coordinates snapshotting, detection, enrichment and persistence.

    Each check persists its snapshot together with the change or events
    it produced in a single store call at the very end, so a check that
    fails or is cancelled before that call leaves the store untouched.
    Once started, the final write runs to completion even if the caller
    is cancelled.  Checks on the same ``(competitor_id, url)`` pair are
    serialised.
    """

    def __init__(
        self,
        store: MonitoringStore,
        snapshot_builder: SnapshotBuilder | None = None,
        enricher: ChangeEnricher | None = None,
        threshold: float = Settings.SIMILARITY_THRESHOLD,
        competitors: Sequence[Competitor] | None = None,
    ) -> None:
        self.settings = Settings()
        self.store = store
        self.snapshot_builder = snapshot_builder or SnapshotBuilder()
        self.enricher = enricher
        self.threshold = threshold
        self.competitors: list[Competitor] = (
            list(competitors)
            if competitors is not None
            else load_competitors()
        )
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    # ── Private helpers ──────────────────────────────────

    def _lock_for(self, competitor_id: str, url: str) -> asyncio.Lock:
        return self._locks.setdefault((competitor_id, url), asyncio.Lock())

    @staticmethod
    def _require(competitor_id: str | None, url: str | None) -> None:
        if not competitor_id or not url:
            raise InvalidCheckRequest("competitorId and url are required")

    async def _enrich(self, change: DetectedChange) -> DetectedChange:
        """Refine *change* with the enricher, keeping it on failure."""
        if self.enricher is None:
            return change
        try:
            classification = await self.enricher.classify(
                change.before_excerpt, change.after_excerpt, change.url,
            )
        except EnrichmentError as exc:
            logger.warning(
                "Enrichment failed for %s, keeping heuristic verdict: %s",
                change.url,
                exc,
            )
            return change
        except Exception as exc:
            logger.error(
                "Unexpected enrichment error for %s: %s",
                change.url,
                exc,
                exc_info=True,
            )
            return change
        return apply_classification(change, classification)

    async def _persist(
        self,
        snapshot: Snapshot,
        change: DetectedChange | None = None,
        events: Sequence[UpdateEvent] = (),
    ) -> None:
        """Write a finished check; cancelling the caller does not abort it."""
        await asyncio.shield(asyncio.to_thread(
            self.store.save_check, snapshot, change, events,
        ))

    async def _check_menu(self, competitor: Competitor) -> MenuCheckResult:
        url = competitor.url
        async with self._lock_for(competitor.id, url):
            logger.info(
                "Checking competitor: %s (%s)", competitor.name, url,
            )
            old_snapshot = await asyncio.to_thread(
                self.store.get_latest_snapshot_with_menu,
                competitor.id,
                url,
            )
            new_snapshot = await asyncio.wait_for(
                self.snapshot_builder.create_snapshot(competitor.id, url),
                timeout=self.settings.CHECK_TIMEOUT,
            )

            if (
                old_snapshot is None
                or old_snapshot.menu_items is None
                or new_snapshot.menu_items is None
            ):
                await self._persist(new_snapshot)
                logger.info(
                    "First menu snapshot for %s, nothing to diff",
                    competitor.name,
                )
                return MenuCheckResult(
                    competitor_id=competitor.id,
                    competitor_name=competitor.name,
                    message=FIRST_SNAPSHOT,
                )

            events = diff_menus(
                old_snapshot.menu_items,
                new_snapshot.menu_items,
                competitor.id,
                competitor.name,
                url,
            )
            await self._persist(new_snapshot, None, events)

        return MenuCheckResult(
            competitor_id=competitor.id,
            competitor_name=competitor.name,
            events=events,
            message=(
                f"Found {len(events)} update(s)" if events else NO_CHANGES
            ),
        )

    # ── Triggers ─────────────────────────────────────────

    async def create_snapshot(
        self, competitor_id: str, url: str,
    ) -> Snapshot:
        """Fetch and store a snapshot without comparing it to anything."""
        self._require(competitor_id, url)
        async with self._lock_for(competitor_id, url):
            snapshot = await self.snapshot_builder.create_snapshot(
                competitor_id, url,
            )
            await self._persist(snapshot)
        return snapshot

    async def check_changes(
        self, competitor_id: str, url: str,
    ) -> ChangeCheckResult:
        """Snapshot *url* and compare it to the previous snapshot.

        Raises :class:`InvalidCheckRequest` when either argument is
        empty and propagates :class:`FetchError` from the fetch.
        """
        self._require(competitor_id, url)
        async with self._lock_for(competitor_id, url):
            old_snapshot = await asyncio.to_thread(
                self.store.get_latest_snapshot, competitor_id, url,
            )
            new_snapshot = await self.snapshot_builder.create_snapshot(
                competitor_id, url,
            )

            if old_snapshot is None:
                await self._persist(new_snapshot)
                logger.info(
                    "First snapshot for %s at %s", competitor_id, url,
                )
                return ChangeCheckResult(
                    snapshot=new_snapshot, message=FIRST_SNAPSHOT,
                )

            change = detect_change(
                old_snapshot, new_snapshot, threshold=self.threshold,
            )
            if change is None:
                similarity = compute_similarity(
                    old_snapshot.normalized_text,
                    new_snapshot.normalized_text,
                )
                await self._persist(new_snapshot)
                logger.info(
                    "No significant changes for %s (similarity %.1f%%)",
                    url,
                    similarity * 100,
                )
                return ChangeCheckResult(
                    snapshot=new_snapshot,
                    message=NO_CHANGES,
                    similarity=similarity,
                )

            change = await self._enrich(change)
            await self._persist(new_snapshot, change)

        logger.warning(
            "Change detected for %s: %s (%s severity) %s",
            competitor_id,
            change.change_type,
            change.severity,
            change.diff_summary,
        )
        return ChangeCheckResult(
            snapshot=new_snapshot, message=CHANGE_DETECTED, change=change,
        )

    async def check_menus(
        self,
        competitors: Sequence[Competitor],
        competitor_id: str | None = None,
    ) -> MenuCheckReport:
        """Diff the menus of *competitors* concurrently.

        A failure for one competitor is recorded on its result and
        does not affect the others.  Each page fetch is bounded by
        ``CHECK_TIMEOUT``; a timed-out check has written nothing.
        """
        targets = [
            c for c in competitors
            if competitor_id is None or c.id == competitor_id
        ]
        if not targets:
            raise InvalidCheckRequest("No competitors found to check")

        logger.info("Checking %d competitor(s)...", len(targets))
        timeout = self.settings.CHECK_TIMEOUT
        outcomes = await asyncio.gather(
            *(self._check_menu(c) for c in targets),
            return_exceptions=True,
        )

        report = MenuCheckReport(checked_at=datetime.now())
        for competitor, outcome in zip(targets, outcomes):
            if isinstance(outcome, MenuCheckResult):
                report.results.append(outcome)
                report.total_events += len(outcome.events)
                continue
            if isinstance(outcome, asyncio.TimeoutError):
                error = f"Check timed out after {timeout:g}s"
            elif isinstance(outcome, Exception):
                error = str(outcome) or type(outcome).__name__
            else:
                raise outcome
            logger.error(
                "Menu check failed for %s: %s",
                competitor.name,
                error,
                exc_info=outcome,
            )
            report.results.append(MenuCheckResult(
                competitor_id=competitor.id,
                competitor_name=competitor.name,
                error=error,
            ))

        logger.info(
            "Check complete: %d total events across %d competitor(s)",
            report.total_events,
            len(targets),
        )
        return report

    async def check_now(
        self,
        competitor_id: str | None = None,
        url: str | None = None,
    ) -> MenuCheckReport:
        """Run one menu-check cycle.

        With *url*, checks that single page as competitor
        *competitor_id*; otherwise checks the configured competitors,
        optionally narrowed to *competitor_id*.
        """
        if url is not None:
            if not competitor_id or not url:
                raise InvalidCheckRequest(
                    "competitorId and url are required"
                )
            adhoc = Competitor(id=competitor_id, name=competitor_id, domain=url)
            return await self.check_menus([adhoc])
        return await self.check_menus(self.competitors, competitor_id)

    # ── Read side ────────────────────────────────────────

    async def get_updates(
        self, competitor_id: str | None = None,
    ) -> UpdatesFeed:
        """Update events for one competitor, or all of them."""
        if competitor_id:
            events = await asyncio.to_thread(
                self.store.get_update_events_for_competitor, competitor_id,
            )
        else:
            events = await asyncio.to_thread(
                self.store.get_all_update_events,
            )
        return UpdatesFeed(events=events)

    async def competitor_overview(
        self, competitor_id: str,
    ) -> CompetitorOverview:
        """Changes and the most recent snapshots of one competitor."""
        if not competitor_id:
            raise InvalidCheckRequest("competitorId is required")
        changes = await asyncio.to_thread(
            self.store.get_changes_for_competitor, competitor_id,
        )
        snapshots = await asyncio.to_thread(
            self.store.get_snapshots_for_competitor, competitor_id,
        )
        return CompetitorOverview(
            competitor_id=competitor_id,
            changes=changes,
            snapshots=snapshots[:OVERVIEW_SNAPSHOT_LIMIT],
        )

    async def dashboard_stats(self) -> DashboardStats:
        """Headline statistics over all update events."""
        events = await asyncio.to_thread(self.store.get_all_update_events)
        return compute_dashboard_stats(events)

    async def clear_all(self) -> None:
        """Remove every snapshot, change and update event."""
        await asyncio.to_thread(self.store.clear_all)
        logger.warning("All monitoring data cleared")
