# rivalwatch/cli/runner.py

"""Headless CLI commands built on the async monitoring service."""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from rivalwatch.enrichment.change_enricher import ChangeEnricher
from rivalwatch.models.change import DetectedChange
from rivalwatch.models.competitor import load_competitors
from rivalwatch.models.update_event import PRICE_CHANGED, UpdateEvent
from rivalwatch.services.monitoring_service import (
    CHANGE_DETECTED,
    MenuCheckReport,
    MonitoringService,
)
from rivalwatch.storage.sqlite_store import SqliteMonitoringStore

logger = logging.getLogger("rivalwatch.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_SEVERITY_STYLES = {"high": "red", "medium": "yellow", "low": "green"}


@contextmanager
def open_service(
    db_path: str | None = None,
    competitors_path: str | None = None,
) -> Iterator[MonitoringService]:
    """Yield a service backed by the SQLite store, closing it afterwards."""
    store = SqliteMonitoringStore(Path(db_path) if db_path else None)
    try:
        service = MonitoringService(
            store,
            enricher=ChangeEnricher.from_settings(),
            competitors=load_competitors(
                Path(competitors_path) if competitors_path else None
            ),
        )
        logger.debug(
            "Service ready: %d competitor(s), enrichment %s",
            len(service.competitors),
            "on" if service.enricher else "off",
        )
        yield service
    finally:
        store.close()


def _dump_json(data: Any) -> None:
    json.dump(data, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


def _format_price(value: float | None) -> str:
    return f"${value:,.2f}" if value is not None else "—"


def _print_events_table(events: list[UpdateEvent], title: str) -> None:
    """Render a Rich table of update events to stdout."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Type", style="magenta")
    table.add_column("Competitor")
    table.add_column("Item", max_width=40)
    table.add_column("Price", justify="right", style="green")
    table.add_column("When", style="dim")

    for idx, e in enumerate(events, 1):
        if e.type == PRICE_CHANGED:
            price_str = (
                f"{_format_price(e.payload.old_price)} → "
                f"{_format_price(e.payload.new_price)}"
            )
        else:
            price_str = _format_price(e.payload.price)
        table.add_row(
            str(idx),
            e.type,
            e.competitor_name,
            e.payload.item_name,
            price_str,
            e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    Console().print(table)


def _print_changes_table(changes: list[DetectedChange], title: str) -> None:
    """Render a Rich table of detected changes to stdout."""
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Severity", justify="center")
    table.add_column("Similarity", justify="right")
    table.add_column("Summary", max_width=60)
    table.add_column("Detected", style="dim")

    for c in changes:
        style = _SEVERITY_STYLES.get(c.severity, "white")
        table.add_row(
            c.change_type,
            f"[{style}]{c.severity}[/{style}]",
            f"{c.similarity_score * 100:.1f}%",
            c.diff_summary,
            c.detected_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    Console().print(table)


def _print_menu_report(report: MenuCheckReport) -> None:
    table = Table(
        title="Menu Check", show_lines=True, title_style="bold cyan",
    )
    table.add_column("Competitor", style="bold")
    table.add_column("Events", justify="right")
    table.add_column("Result")

    for r in report.results:
        if r.error is not None:
            table.add_row(r.competitor_name, "—", f"[red]{r.error}[/red]")
        else:
            table.add_row(r.competitor_name, str(len(r.events)), r.message)

    Console().print(table)
    events = [e for r in report.results for e in r.events]
    if events:
        _print_events_table(events, "Update Events")


# ── Commands ─────────────────────────────────────────────


async def cli_check_changes(
    url: str,
    competitor_id: str,
    output_format: str,
    db_path: str | None = None,
) -> int:
    """Check one page for a content change (0=ok, 1=fail)."""
    with open_service(db_path) as service:
        _err.print(
            f"[bold]Checking:[/bold] {url}  [dim]competitor={competitor_id}[/dim]"
        )
        result = await service.check_changes(competitor_id, url)

    if result.message == CHANGE_DETECTED and result.change is not None:
        _err.print(
            f"[yellow]⚠ {result.change.diff_summary}"
            f" ({result.change.severity})[/yellow]"
        )
    elif result.similarity is not None:
        _err.print(
            f"[green]✓ {result.message}"
            f" (similarity {result.similarity * 100:.1f}%)[/green]"
        )
    else:
        _err.print(f"[green]✓ {result.message}[/green]")

    if output_format == "table":
        if result.change is not None:
            _print_changes_table([result.change], "Detected Change")
    else:
        _dump_json(result.to_dict())
    return 0


async def cli_snapshot(
    url: str,
    competitor_id: str,
    output_format: str,
    db_path: str | None = None,
) -> int:
    """Take and store a snapshot without comparing it."""
    with open_service(db_path) as service:
        snapshot = await service.create_snapshot(competitor_id, url)

    _err.print(
        f"[green]✓ Snapshot {snapshot.id}"
        f" (hash {snapshot.content_hash[:8]}...)[/green]"
    )
    if output_format == "table":
        table = Table(title="Snapshot", title_style="bold cyan")
        table.add_column("Field", style="bold")
        table.add_column("Value", overflow="fold")
        table.add_row("Title", snapshot.title or "—")
        table.add_row("URL", snapshot.url)
        table.add_row("Hash", snapshot.content_hash)
        table.add_row("Text", f"{len(snapshot.normalized_text):,} chars")
        table.add_row(
            "Menu items",
            str(len(snapshot.menu_items))
            if snapshot.menu_items is not None
            else "—",
        )
        Console().print(table)
    else:
        _dump_json({"success": True, "snapshot": snapshot.to_dict()})
    return 0


async def cli_check_menus(
    competitor_id: str | None,
    url: str | None,
    output_format: str,
    db_path: str | None = None,
    competitors_path: str | None = None,
) -> int:
    """Run one menu-check cycle; 1 when every competitor failed."""
    with open_service(db_path, competitors_path) as service:
        report = await service.check_now(competitor_id, url)

    for error_msg in report.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")
    _err.print(
        f"[green]✓ {report.total_events} update event(s)"
        f" across {len(report.results)} competitor(s)[/green]"
    )

    if output_format == "table":
        _print_menu_report(report)
    else:
        _dump_json({"success": True, **report.to_dict()})
    return 1 if len(report.errors) == len(report.results) else 0


async def cli_updates(
    competitor_id: str | None,
    output_format: str,
    db_path: str | None = None,
) -> int:
    """List stored update events."""
    with open_service(db_path) as service:
        feed = await service.get_updates(competitor_id)

    if not feed.events:
        _err.print("[yellow]No update events recorded.[/yellow]")
    if output_format == "table":
        _print_events_table(feed.events, "Update Events")
    else:
        _dump_json(feed.to_dict())
    return 0


async def cli_overview(
    competitor_id: str,
    output_format: str,
    db_path: str | None = None,
) -> int:
    """Show changes and recent snapshots for one competitor."""
    with open_service(db_path) as service:
        overview = await service.competitor_overview(competitor_id)

    if output_format == "table":
        _print_changes_table(
            overview.changes, f"Changes for {competitor_id}",
        )
        last = overview.last_snapshot
        _err.print(
            f"[dim]{len(overview.snapshots)} recent snapshot(s); last: "
            f"{last.created_at.isoformat() if last else 'never'}[/dim]"
        )
    else:
        _dump_json(overview.to_dict())
    return 0


async def cli_stats(output_format: str, db_path: str | None = None) -> int:
    """Print dashboard statistics."""
    with open_service(db_path) as service:
        stats = await service.dashboard_stats()

    if output_format == "table":
        table = Table(title="Dashboard", title_style="bold cyan")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")
        table.add_column("Trend", justify="right", style="dim")
        table.add_row(
            "Total threats",
            str(stats.total_threats),
            stats.trends["totalThreats"],
        )
        table.add_row(
            "High severity",
            str(stats.high_severity),
            stats.trends["highSeverity"],
        )
        table.add_row(
            "Monitored competitors",
            str(stats.monitored_orgs),
            stats.trends["monitoredOrgs"],
        )
        table.add_row(
            "Last 24h",
            str(stats.recent_changes),
            stats.trends["recentChanges"],
        )
        Console().print(table)
    else:
        _dump_json(stats.to_dict())
    return 0


async def cli_clear(db_path: str | None = None) -> int:
    """Delete all monitoring data."""
    with open_service(db_path) as service:
        await service.clear_all()
    _err.print("[green]✓ All monitoring data cleared[/green]")
    return 0
