# rivalwatch/monitoring/snapshot_builder.py

"""Fetch a competitor page and package it as an immutable snapshot."""

import asyncio
import dataclasses
import json
import logging
import re
import uuid
from datetime import datetime

from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from rivalwatch.config.settings import Settings
from rivalwatch.detection.text_normalizer import (
    compute_content_hash,
    normalize_text,
)
from rivalwatch.errors import FetchError
from rivalwatch.models.snapshot import MenuItem, Snapshot
from rivalwatch.parsing.menu_parser import (
    load_menu_selectors,
    parse_menu,
    parse_menu_payload,
)

_WHITESPACE_RE = re.compile(r"\s+")


class SnapshotBuilder:
    """Builds snapshots from live pages.

    The page fetch is the only blocking step; it runs in a worker
    thread so that checks for different competitors can overlap.
    Fetch failures are raised as :class:`FetchError` and never
    retried here.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger("rivalwatch.snapshot")
        self.settings = Settings()
        self.selectors: dict[str, str] = load_menu_selectors()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    # ── Fetching ─────────────────────────────────────────

    def _fetch_html(self, url: str) -> str:
        """GET a page, raising FetchError on transport errors or non-2xx."""
        try:
            resp = self.session.get(
                url,
                headers=self.settings.DEFAULT_HEADERS,
                timeout=self.settings.REQUEST_TIMEOUT,
                allow_redirects=True,
            )
        except Exception as exc:
            raise FetchError(url, reason=str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            self.logger.warning(
                "HTTP %d fetching %s", resp.status_code, url,
            )
            raise FetchError(url, resp.status_code)
        return str(resp.text)

    def _fetch_menu_from_api(self, url: str) -> list[MenuItem] | None:
        """Try the site's JSON menu endpoint (``<url>/api/menu``)."""
        api_url = url.rstrip("/") + "/api/menu"
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Accept": "application/json",
        }
        try:
            resp = self.session.get(
                api_url,
                headers=headers,
                timeout=self.settings.REQUEST_TIMEOUT,
            )
            if not 200 <= resp.status_code < 300:
                return None
            return parse_menu_payload(json.loads(resp.text))
        except Exception as exc:
            self.logger.debug(
                "Menu API fallback failed for %s: %s",
                api_url,
                exc,
                exc_info=True,
            )
            return None

    # ── Extraction ───────────────────────────────────────

    def is_menu_source(self, url: str) -> bool:
        """True when *url* serves a structured menu we can parse."""
        return any(
            marker in url for marker in self.settings.MENU_SOURCE_MARKERS
        )

    def _menu_text(self, soup: BeautifulSoup) -> str:
        """Product names, then descriptions, then prices as one string."""
        names = [
            t.get_text(strip=True)
            for t in soup.select(self.selectors["name"])
        ]
        if not names:
            return ""
        descriptions = [
            t.get_text(strip=True)
            for t in soup.select(self.selectors["description"])
        ]
        prices = [
            t.get_text(strip=True)
            for t in soup.select(self.selectors["price"])
        ]
        return (
            f"{' '.join(names)} {' '.join(descriptions)} {' '.join(prices)}"
        ).strip()

    @staticmethod
    def _page_text(soup: BeautifulSoup) -> str:
        """Visible text with scripts and styles removed."""
        for tag in soup(["script", "style"]):
            tag.decompose()
        return _WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()

    def build_snapshot(
        self, competitor_id: str, url: str, html: str,
    ) -> Snapshot:
        """Turn fetched markup into a snapshot (no network access)."""
        soup = BeautifulSoup(html, "lxml")
        title = (
            soup.title.get_text(strip=True) if soup.title is not None else ""
        )

        text = ""
        menu_items: tuple[MenuItem, ...] | None = None
        if self.is_menu_source(url):
            menu_items = tuple(parse_menu(html, self.selectors))
            text = self._menu_text(soup)

        if not text:
            text = self._page_text(soup)

        normalized = normalize_text(text[: self.settings.MAX_SNAPSHOT_TEXT])

        return Snapshot(
            id=f"snap-{uuid.uuid4().hex}",
            competitor_id=competitor_id,
            url=url,
            title=title,
            normalized_text=normalized,
            content_hash=compute_content_hash(normalized),
            created_at=datetime.now(),
            menu_items=menu_items,
        )

    async def create_snapshot(
        self, competitor_id: str, url: str,
    ) -> Snapshot:
        """Fetch *url* and build a snapshot for *competitor_id*."""
        html = await asyncio.to_thread(self._fetch_html, url)
        snapshot = self.build_snapshot(competitor_id, url, html)

        if snapshot.menu_items == () and self.settings.MENU_API_FALLBACK:
            api_items = await asyncio.to_thread(
                self._fetch_menu_from_api, url,
            )
            if api_items:
                snapshot = dataclasses.replace(
                    snapshot, menu_items=tuple(api_items),
                )

        self.logger.info(
            "Snapshot %s for %s (hash %s..., %d chars, %s menu items)",
            snapshot.id,
            url,
            snapshot.content_hash[:8],
            len(snapshot.normalized_text),
            len(snapshot.menu_items)
            if snapshot.menu_items is not None
            else "no",
        )
        return snapshot
