# rivalwatch/services/dashboard_stats.py

"""Headline numbers computed from the update-event log."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from rivalwatch.models.update_event import (
    PRICE_CHANGED,
    PRODUCT_ADDED,
    UpdateEvent,
)

_WINDOW = timedelta(hours=24)


@dataclass
class DashboardStats:
    """Event counts plus the 24h trend against the previous 24h."""

    total_threats: int = 0
    high_severity: int = 0
    monitored_orgs: int = 1
    recent_changes: int = 0
    trends: dict[str, str] = field(
        default_factory=lambda: dict[str, str]()
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-ready dict."""
        return {
            "totalThreats": self.total_threats,
            "highSeverity": self.high_severity,
            "monitoredOrgs": self.monitored_orgs,
            "recentChanges": self.recent_changes,
            "trends": dict(self.trends),
        }


def _trend_percent(recent: int, previous: int) -> str:
    if previous > 0:
        return f"{(recent - previous) / previous * 100:.0f}%"
    return "100%" if recent > 0 else "0%"


def compute_dashboard_stats(
    events: Sequence[UpdateEvent], now: datetime | None = None,
) -> DashboardStats:
    """Summarise *events* as of *now*.

    Every menu event counts as high severity.  ``monitored_orgs`` is
    never below 1 so an empty log still reports the demo competitor.
    """
    current = now or datetime.now()
    last_24h = current - _WINDOW
    previous_24h = current - 2 * _WINDOW

    recent = sum(1 for e in events if e.created_at > last_24h)
    previous = sum(
        1 for e in events if previous_24h < e.created_at <= last_24h
    )
    trend = _trend_percent(recent, previous)

    return DashboardStats(
        total_threats=len(events),
        high_severity=sum(
            1 for e in events if e.type in (PRICE_CHANGED, PRODUCT_ADDED)
        ),
        monitored_orgs=len({e.competitor_id for e in events}) or 1,
        recent_changes=recent,
        trends={
            "totalThreats": trend,
            "highSeverity": "0%",
            "monitoredOrgs": "0%",
            "recentChanges": trend,
        },
    )
