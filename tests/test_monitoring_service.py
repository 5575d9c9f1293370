# tests/test_monitoring_service.py

"""Tests for the MonitoringService check orchestration."""

import asyncio
import itertools
import threading
import time
import unittest
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from rivalwatch.config.settings import Settings
from rivalwatch.detection.text_normalizer import compute_content_hash
from rivalwatch.errors import EnrichmentError, FetchError, InvalidCheckRequest
from rivalwatch.models.change import Classification, DetectedChange
from rivalwatch.models.competitor import Competitor
from rivalwatch.models.snapshot import MenuItem, Snapshot
from rivalwatch.models.update_event import (
    PRICE_CHANGED,
    PRODUCT_ADDED,
    UpdateEvent,
)
from rivalwatch.services.monitoring_service import (
    CHANGE_DETECTED,
    FIRST_SNAPSHOT,
    NO_CHANGES,
    MonitoringService,
)
from rivalwatch.storage.monitoring_store import InMemoryMonitoringStore

URL = "https://acme.example.com/pricing"
MENU_URL = "http://localhost:3000/api/demo/pizza-website"

PIZZA = Competitor(id="pizza-demo", name="Slice & Wood Pizzeria", domain=MENU_URL)
TACO = Competitor(id="taco-demo", name="Taco Town", domain="taco.example.com")

_ids = itertools.count(1)
_clock = itertools.count()
T0 = datetime(2024, 1, 1, 12, 0, 0)


def text_snapshot(text: str, competitor_id: str = "acme", url: str = URL) -> Snapshot:
    return Snapshot(
        id=f"snap-{next(_ids)}",
        competitor_id=competitor_id,
        url=url,
        title="Pricing",
        normalized_text=text,
        content_hash=compute_content_hash(text),
        created_at=T0 + timedelta(seconds=next(_clock)),
    )


def menu_snapshot(
    items: tuple[MenuItem, ...] | None,
    competitor: Competitor = PIZZA,
) -> Snapshot:
    text = " ".join(i.name.lower() for i in items or ())
    return Snapshot(
        id=f"snap-{next(_ids)}",
        competitor_id=competitor.id,
        url=competitor.url,
        title="Menu",
        normalized_text=text,
        content_hash=compute_content_hash(text),
        created_at=T0 + timedelta(seconds=next(_clock)),
        menu_items=items,
    )


MARGHERITA = MenuItem(key="id-1", name="The Margherita", price=14.0)
PEPPERONI = MenuItem(key="id-2", name="Pepperoni Classic", price=16.0)
CALZONE = MenuItem(key="id-4", name="Calzone", price=13.0)


class ServiceTestCase(unittest.IsolatedAsyncioTestCase):
    """Wires a service to an in-memory store and a fake builder."""

    def setUp(self) -> None:
        self.store = InMemoryMonitoringStore()
        self.builder = MagicMock()
        self.builder.create_snapshot = AsyncMock()
        self.service = MonitoringService(
            self.store,
            snapshot_builder=self.builder,
            competitors=[PIZZA, TACO],
        )

    def queue(self, *snapshots: Snapshot) -> None:
        self.builder.create_snapshot.side_effect = list(snapshots)


class TestCheckChanges(ServiceTestCase):
    """Tests for MonitoringService.check_changes."""

    async def test_first_snapshot(self) -> None:
        snap = text_snapshot("enterprise plan $5,000 / month")
        self.queue(snap)

        result = await self.service.check_changes("acme", URL)

        self.assertEqual(result.message, FIRST_SNAPSHOT)
        self.assertIsNone(result.change)
        self.assertIsNone(result.similarity)
        self.assertEqual(self.store.get_latest_snapshot("acme", URL), snap)

    async def test_no_change_reports_similarity(self) -> None:
        self.queue(
            text_snapshot("enterprise plan $5,000 / month"),
            text_snapshot("enterprise plan $5,000 / month"),
        )
        await self.service.check_changes("acme", URL)

        result = await self.service.check_changes("acme", URL)

        self.assertEqual(result.message, NO_CHANGES)
        self.assertEqual(result.similarity, 1.0)
        self.assertEqual(self.store.get_all_changes(), [])
        self.assertEqual(
            len(self.store.get_snapshots_for_competitor("acme")), 2,
        )

    async def test_change_detected_and_persisted(self) -> None:
        old = text_snapshot("enterprise plan $5,000 / month")
        new = text_snapshot("enterprise plan $4,250 / month")
        self.queue(old, new)
        await self.service.check_changes("acme", URL)

        result = await self.service.check_changes("acme", URL)

        self.assertEqual(result.message, CHANGE_DETECTED)
        assert result.change is not None
        self.assertEqual(result.change.change_type, "pricing")
        self.assertEqual(result.change.old_snapshot_id, old.id)
        self.assertEqual(result.change.new_snapshot_id, new.id)
        self.assertEqual(self.store.get_all_changes(), [result.change])
        self.assertEqual(self.store.get_latest_snapshot("acme", URL), new)

    async def test_enrichment_overrides_verdict(self) -> None:
        enricher = MagicMock()
        enricher.classify = AsyncMock(return_value=Classification(
            change_type="product",
            severity="low",
            rationale="New tier added",
            recommended_actions=("Compare tiers",),
        ))
        self.service.enricher = enricher
        self.queue(
            text_snapshot("enterprise plan $5,000 / month"),
            text_snapshot("enterprise plan $4,250 / month"),
        )
        await self.service.check_changes("acme", URL)

        result = await self.service.check_changes("acme", URL)

        assert result.change is not None
        self.assertEqual(result.change.change_type, "product")
        self.assertEqual(result.change.severity, "low")
        self.assertEqual(result.change.rationale, "New tier added")
        self.assertEqual(result.change.recommended_actions, ("Compare tiers",))
        enricher.classify.assert_awaited_once()

    async def test_enrichment_failure_keeps_heuristic(self) -> None:
        enricher = MagicMock()
        enricher.classify = AsyncMock(side_effect=EnrichmentError("boom"))
        self.service.enricher = enricher
        self.queue(
            text_snapshot("enterprise plan $5,000 / month"),
            text_snapshot("enterprise plan $4,250 / month"),
        )
        await self.service.check_changes("acme", URL)

        result = await self.service.check_changes("acme", URL)

        assert result.change is not None
        self.assertEqual(result.change.change_type, "pricing")
        self.assertEqual(result.change.severity, "high")
        self.assertIsNone(result.change.rationale)
        self.assertEqual(len(self.store.get_all_changes()), 1)

    async def test_unexpected_enrichment_error_keeps_heuristic(self) -> None:
        enricher = MagicMock()
        enricher.classify = AsyncMock(side_effect=RuntimeError("bad client"))
        self.service.enricher = enricher
        self.queue(
            text_snapshot("enterprise plan $5,000 / month"),
            text_snapshot("enterprise plan $4,250 / month"),
        )
        await self.service.check_changes("acme", URL)

        result = await self.service.check_changes("acme", URL)

        self.assertEqual(result.message, CHANGE_DETECTED)

    async def test_missing_arguments_rejected(self) -> None:
        with self.assertRaises(InvalidCheckRequest):
            await self.service.check_changes("", URL)
        with self.assertRaises(InvalidCheckRequest):
            await self.service.check_changes("acme", "")
        self.builder.create_snapshot.assert_not_awaited()

    async def test_fetch_failure_persists_nothing(self) -> None:
        self.builder.create_snapshot.side_effect = FetchError(URL, 503)

        with self.assertRaises(FetchError):
            await self.service.check_changes("acme", URL)

        self.assertIsNone(self.store.get_latest_snapshot("acme", URL))

    async def test_result_to_dict(self) -> None:
        self.queue(text_snapshot("enterprise plan"))

        data = (await self.service.check_changes("acme", URL)).to_dict()

        self.assertIsNone(data["change"])
        self.assertEqual(data["message"], FIRST_SNAPSHOT)
        self.assertNotIn("similarity", data)


class TestCreateSnapshot(ServiceTestCase):

    async def test_stores_snapshot(self) -> None:
        snap = text_snapshot("enterprise plan")
        self.queue(snap)

        result = await self.service.create_snapshot("acme", URL)

        self.assertEqual(result, snap)
        self.assertEqual(self.store.get_latest_snapshot("acme", URL), snap)

    async def test_missing_arguments_rejected(self) -> None:
        with self.assertRaises(InvalidCheckRequest):
            await self.service.create_snapshot("acme", "")


class TestCheckMenus(ServiceTestCase):
    """Tests for menu checks across competitors."""

    async def test_first_menu_snapshot(self) -> None:
        self.queue(menu_snapshot((MARGHERITA, PEPPERONI)))

        report = await self.service.check_menus([PIZZA])

        self.assertEqual(report.total_events, 0)
        self.assertEqual(report.results[0].message, FIRST_SNAPSHOT)
        self.assertEqual(report.errors, [])

    async def test_diff_against_previous_menu(self) -> None:
        repriced = MenuItem(key="id-1", name="The Margherita", price=15.0)
        self.queue(
            menu_snapshot((MARGHERITA, PEPPERONI)),
            menu_snapshot((repriced, PEPPERONI, CALZONE)),
        )
        await self.service.check_menus([PIZZA])

        report = await self.service.check_menus([PIZZA])

        result = report.results[0]
        self.assertEqual(result.message, "Found 2 update(s)")
        self.assertEqual(report.total_events, 2)
        self.assertEqual(
            [e.type for e in result.events], [PRODUCT_ADDED, PRICE_CHANGED],
        )
        self.assertEqual(
            {e.id for e in self.store.get_all_update_events()},
            {e.id for e in result.events},
        )

    async def test_unchanged_menu(self) -> None:
        self.queue(
            menu_snapshot((MARGHERITA,)),
            menu_snapshot((MARGHERITA,)),
        )
        await self.service.check_menus([PIZZA])

        report = await self.service.check_menus([PIZZA])

        self.assertEqual(report.results[0].message, NO_CHANGES)
        self.assertEqual(
            len(self.store.get_snapshots_for_competitor("pizza-demo")), 2,
        )

    async def test_previous_snapshot_without_menu_is_first(self) -> None:
        self.queue(menu_snapshot(None), menu_snapshot((MARGHERITA,)))
        await self.service.check_menus([PIZZA])

        report = await self.service.check_menus([PIZZA])

        self.assertEqual(report.results[0].message, FIRST_SNAPSHOT)
        self.assertEqual(report.total_events, 0)

    async def test_one_failure_does_not_block_others(self) -> None:
        async def build(competitor_id: str, url: str) -> Snapshot:
            if competitor_id == TACO.id:
                raise FetchError(url, 500)
            return menu_snapshot((MARGHERITA,))

        self.builder.create_snapshot.side_effect = build

        report = await self.service.check_menus([PIZZA, TACO])

        self.assertEqual(len(report.results), 2)
        ok, failed = report.results
        self.assertIsNone(ok.error)
        self.assertEqual(ok.message, FIRST_SNAPSHOT)
        self.assertEqual(failed.competitor_id, TACO.id)
        assert failed.error is not None
        self.assertIn("HTTP 500", failed.error)
        self.assertEqual(report.errors, [failed.error])
        self.assertEqual(
            failed.to_dict(),
            {
                "competitorId": TACO.id,
                "competitorName": TACO.name,
                "error": failed.error,
            },
        )

    async def test_timeout_recorded_as_error(self) -> None:
        async def slow(competitor_id: str, url: str) -> Snapshot:
            await asyncio.sleep(5)
            return menu_snapshot((MARGHERITA,))

        self.builder.create_snapshot.side_effect = slow

        with patch.object(Settings, "CHECK_TIMEOUT", 0.05):
            report = await self.service.check_menus([PIZZA])

        self.assertEqual(report.errors, ["Check timed out after 0.05s"])
        self.assertIsNone(
            self.store.get_latest_snapshot("pizza-demo", MENU_URL)
        )

    async def test_filter_by_competitor(self) -> None:
        self.queue(menu_snapshot((CALZONE,), competitor=TACO))

        report = await self.service.check_menus([PIZZA, TACO], "taco-demo")

        self.assertEqual([r.competitor_id for r in report.results], ["taco-demo"])
        self.builder.create_snapshot.assert_awaited_once_with(
            "taco-demo", "https://taco.example.com",
        )

    async def test_no_matching_competitors(self) -> None:
        with self.assertRaises(InvalidCheckRequest):
            await self.service.check_menus([PIZZA], "unknown")
        with self.assertRaises(InvalidCheckRequest):
            await self.service.check_menus([])

    async def test_report_to_dict(self) -> None:
        self.queue(menu_snapshot((MARGHERITA,)))

        data = (await self.service.check_menus([PIZZA])).to_dict()

        self.assertEqual(data["totalEvents"], 0)
        self.assertEqual(data["results"][0]["events"], [])
        self.assertEqual(data["results"][0]["message"], FIRST_SNAPSHOT)


class TestCheckSerialisation(ServiceTestCase):
    """Concurrent checks on one page are serialised, others overlap."""

    def setUp(self) -> None:
        super().setUp()
        self.active = 0
        self.peak = 0

        async def build(competitor_id: str, url: str) -> Snapshot:
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.05)
            self.active -= 1
            return text_snapshot("enterprise plan", competitor_id, url)

        self.builder.create_snapshot.side_effect = build

    async def test_same_page_compares_against_previous_check(self) -> None:
        first, second = await asyncio.gather(
            self.service.check_changes("acme", URL),
            self.service.check_changes("acme", URL),
        )

        self.assertEqual(first.message, FIRST_SNAPSHOT)
        self.assertEqual(second.message, NO_CHANGES)
        self.assertEqual(self.peak, 1)
        self.assertEqual(
            len(self.store.get_snapshots_for_competitor("acme")), 2,
        )

    async def test_different_pages_overlap(self) -> None:
        results = await asyncio.gather(
            self.service.check_changes("acme", URL),
            self.service.check_changes("beta", "https://beta.example.com"),
        )

        self.assertEqual(
            [r.message for r in results], [FIRST_SNAPSHOT, FIRST_SNAPSHOT],
        )
        self.assertEqual(self.peak, 2)


class TestFinalWrite(ServiceTestCase):
    """The end-of-check write is outside the fetch deadline."""

    def setUp(self) -> None:
        super().setUp()
        self.write_started = threading.Event()
        save_check = self.store.save_check

        def slow_save(
            snapshot: Snapshot,
            change: DetectedChange | None = None,
            events: Sequence[UpdateEvent] = (),
        ) -> None:
            self.write_started.set()
            time.sleep(0.2)
            save_check(snapshot, change, events)

        patcher = patch.object(self.store, "save_check", side_effect=slow_save)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def _wait_for(self, condition: Callable[[], bool]) -> None:
        for _ in range(200):
            if condition():
                return
            await asyncio.sleep(0.01)
        self.fail("condition not reached")

    async def test_slow_write_is_not_a_timeout(self) -> None:
        self.queue(menu_snapshot((MARGHERITA,)))

        with patch.object(Settings, "CHECK_TIMEOUT", 0.05):
            report = await self.service.check_menus([PIZZA])

        self.assertEqual(report.errors, [])
        self.assertEqual(report.results[0].message, FIRST_SNAPSHOT)
        self.assertIsNotNone(
            self.store.get_latest_snapshot("pizza-demo", MENU_URL)
        )

    async def test_cancelled_check_finishes_its_write(self) -> None:
        self.queue(text_snapshot("enterprise plan"))
        task = asyncio.create_task(self.service.check_changes("acme", URL))
        await self._wait_for(self.write_started.is_set)

        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        await self._wait_for(
            lambda: self.store.get_latest_snapshot("acme", URL) is not None
        )


class TestCheckNow(ServiceTestCase):

    async def test_uses_configured_competitors(self) -> None:
        self.queue(
            menu_snapshot((MARGHERITA,)),
            menu_snapshot((CALZONE,), competitor=TACO),
        )

        report = await self.service.check_now()

        self.assertEqual(
            [r.competitor_id for r in report.results],
            ["pizza-demo", "taco-demo"],
        )

    async def test_adhoc_url(self) -> None:
        self.queue(menu_snapshot((MARGHERITA,)))

        report = await self.service.check_now("custom", "shop.example.com/menu")

        self.assertEqual(report.results[0].competitor_id, "custom")
        self.builder.create_snapshot.assert_awaited_once_with(
            "custom", "https://shop.example.com/menu",
        )

    async def test_adhoc_url_requires_id(self) -> None:
        with self.assertRaises(InvalidCheckRequest):
            await self.service.check_now(None, "shop.example.com/menu")


class TestReadSide(ServiceTestCase):
    """Tests for updates, overview, stats and clearing."""

    async def _seed_menu_events(self) -> None:
        repriced = MenuItem(key="id-1", name="The Margherita", price=15.0)
        self.queue(
            menu_snapshot((MARGHERITA,)),
            menu_snapshot((repriced, CALZONE)),
        )
        await self.service.check_menus([PIZZA])
        await self.service.check_menus([PIZZA])

    async def test_updates_split_by_type(self) -> None:
        await self._seed_menu_events()

        feed = await self.service.get_updates()

        self.assertEqual(feed.total, 2)
        self.assertEqual(len(feed.product_updates), 1)
        self.assertEqual(len(feed.price_updates), 1)
        data = feed.to_dict()
        self.assertEqual(data["total"], 2)
        self.assertEqual(
            data["priceUpdates"][0]["payload"]["newPrice"], 15.0,
        )

    async def test_updates_for_competitor(self) -> None:
        await self._seed_menu_events()

        self.assertEqual((await self.service.get_updates("pizza-demo")).total, 2)
        self.assertEqual((await self.service.get_updates("taco-demo")).total, 0)

    async def test_overview_limits_snapshots(self) -> None:
        self.queue(*(text_snapshot("enterprise plan") for _ in range(12)))
        for _ in range(12):
            await self.service.create_snapshot("acme", URL)

        overview = await self.service.competitor_overview("acme")

        self.assertEqual(len(overview.snapshots), 10)
        assert overview.last_snapshot is not None
        self.assertEqual(
            overview.last_snapshot,
            self.store.get_latest_snapshot("acme", URL),
        )
        self.assertEqual(overview.to_dict()["stats"]["totalChanges"], 0)

    async def test_overview_groups_changes(self) -> None:
        self.queue(
            text_snapshot("enterprise plan $5,000 / month"),
            text_snapshot("enterprise plan $4,250 / month"),
        )
        await self.service.check_changes("acme", URL)
        await self.service.check_changes("acme", URL)

        stats = (await self.service.competitor_overview("acme")).to_dict()["stats"]

        self.assertEqual(stats["totalChanges"], 1)
        self.assertEqual(stats["pricingChanges"], 1)
        self.assertEqual(stats["productChanges"], 0)

    async def test_overview_requires_id(self) -> None:
        with self.assertRaises(InvalidCheckRequest):
            await self.service.competitor_overview("")

    async def test_dashboard_stats(self) -> None:
        await self._seed_menu_events()

        stats = await self.service.dashboard_stats()

        self.assertEqual(stats.total_threats, 2)
        self.assertEqual(stats.high_severity, 2)
        self.assertEqual(stats.monitored_orgs, 1)

    async def test_clear_all(self) -> None:
        await self._seed_menu_events()

        await self.service.clear_all()

        self.assertEqual((await self.service.get_updates()).total, 0)
        self.assertIsNone(
            self.store.get_latest_snapshot("pizza-demo", MENU_URL)
        )


if __name__ == "__main__":
    unittest.main()
