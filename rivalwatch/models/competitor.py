# rivalwatch/models/competitor.py

"""Competitor records and the registry loader."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from rivalwatch.config.settings import Settings

logger = logging.getLogger("rivalwatch.competitors")


@dataclass(frozen=True)
class Competitor:
    """A monitored competitor and the page to watch."""

    id: str
    name: str
    domain: str

    @property
    def url(self) -> str:
        """The domain as a fetchable URL (``https://`` when schemeless)."""
        if self.domain.startswith(("http://", "https://")):
            return self.domain
        return f"https://{self.domain}"


def _from_entries(entries: list[dict[str, Any]]) -> list[Competitor]:
    competitors: list[Competitor] = []
    for row in entries:
        if not row.get("id") or not row.get("domain"):
            logger.warning("Skipping competitor entry without id/domain: %s", row)
            continue
        competitors.append(Competitor(
            id=str(row["id"]),
            name=str(row.get("name") or row["id"]),
            domain=str(row["domain"]),
        ))
    return competitors


def load_competitors(path: Path | None = None) -> list[Competitor]:
    """Load the competitor registry from a JSON list.

    Falls back to ``Settings.DEFAULT_COMPETITORS`` when the file is
    missing or unreadable.
    """
    registry_path = path or Settings.COMPETITORS_PATH
    if not registry_path.exists():
        logger.debug(
            "No competitors file at %s, using defaults", registry_path,
        )
        return _from_entries(Settings.DEFAULT_COMPETITORS)

    try:
        with open(registry_path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning(
            "Failed to read %s: %s", registry_path, exc,
        )
        return _from_entries(Settings.DEFAULT_COMPETITORS)

    if not isinstance(data, list):
        logger.warning(
            "Competitors file %s is not a JSON list", registry_path,
        )
        return _from_entries(Settings.DEFAULT_COMPETITORS)

    items: list[object] = cast(list[object], data)
    return _from_entries([e for e in items if isinstance(e, dict)])
