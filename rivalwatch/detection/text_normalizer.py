# rivalwatch/detection/text_normalizer.py

"""Canonicalise page text so that snapshots can be compared."""

import hashlib
import re

_WHITESPACE_RE = re.compile(r"\s+")

# Boilerplate words that churn on every page (banners, footers)
_BOILERPLATE_RE = re.compile(r"cookie|privacy|terms|policy", re.IGNORECASE)

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_TIME_RE = re.compile(r"\d{2}:\d{2}:\d{2}")


def _normalize_once(text: str) -> str:
    lowered = text.lower()
    collapsed = _WHITESPACE_RE.sub(" ", lowered)
    stripped = _BOILERPLATE_RE.sub("", collapsed)
    stripped = _DATE_RE.sub("", stripped)
    stripped = _TIME_RE.sub("", stripped)
    return stripped.strip()


def normalize_text(text: str) -> str:
    """Lowercase, collapse whitespace and strip boilerplate, dates and times.

    Removing a word can leave a double space, or splice two fragments into
    a fresh boilerplate word, so the rules are re-applied until the text
    stops changing.
    """
    current = text or ""
    while True:
        normalized = _normalize_once(current)
        if normalized == current:
            return normalized
        current = normalized


def compute_content_hash(normalized_text: str) -> str:
    """SHA-256 hex digest of already-normalised text."""
    return hashlib.sha256(normalized_text.encode("utf-8")).hexdigest()
