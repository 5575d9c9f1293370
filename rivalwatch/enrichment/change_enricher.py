# rivalwatch/enrichment/change_enricher.py

"""Optional LLM classification that refines heuristic change verdicts."""

import asyncio
import dataclasses
import json
import logging
from typing import Any, cast

from anthropic import Anthropic, APIError

from rivalwatch.config.settings import Settings
from rivalwatch.errors import EnrichmentError
from rivalwatch.models.change import (
    CHANGE_TYPES,
    SEVERITIES,
    ChangeType,
    Classification,
    DetectedChange,
    Severity,
)

logger = logging.getLogger("rivalwatch.enrichment")

_SYSTEM_PROMPT = (
    "You are a competitive intelligence analyst. Analyze website changes "
    "and classify them. Respond with JSON only, no markdown."
)

_USER_PROMPT = """Analyze this website change:

URL: {url}
Before: {before}
After: {after}

Classify the change:
- changeType: "product" (new products/features), "pricing" (price changes), or "other"
- severity: "high" (critical impact), "medium" (significant), or "low" (minor)
- rationale: 1-2 sentence explanation of why it matters
- recommendedActions: Array of 1-3 actionable recommendations

Return JSON:
{{
  "changeType": "product" | "pricing" | "other",
  "severity": "high" | "medium" | "low",
  "rationale": "explanation here",
  "recommendedActions": ["action 1", "action 2"]
}}"""


def _strip_code_fence(text: str) -> str:
    if "```json" in text:
        return text.split("```json")[1].split("```")[0].strip()
    if "```" in text:
        return text.split("```")[1].split("```")[0].strip()
    return text.strip()


def parse_classification(text: str) -> Classification:
    """Parse the model's JSON answer into a :class:`Classification`.

    Missing fields take neutral defaults; unknown enum values and
    non-JSON answers raise :class:`EnrichmentError`.
    """
    try:
        data: object = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError as exc:
        raise EnrichmentError(f"Invalid JSON response: {exc}") from exc
    if not isinstance(data, dict):
        raise EnrichmentError("Classification response is not an object")
    result = cast(dict[str, Any], data)

    change_type = result.get("changeType") or "other"
    severity = result.get("severity") or "medium"
    if change_type not in CHANGE_TYPES:
        raise EnrichmentError(f"Unknown changeType: {change_type!r}")
    if severity not in SEVERITIES:
        raise EnrichmentError(f"Unknown severity: {severity!r}")

    actions: object = result.get("recommendedActions") or []
    if not isinstance(actions, list):
        raise EnrichmentError("recommendedActions is not a list")

    return Classification(
        change_type=cast(ChangeType, change_type),
        severity=cast(Severity, severity),
        rationale=str(result.get("rationale") or "Change detected"),
        recommended_actions=tuple(
            str(a) for a in cast(list[object], actions)
        ),
    )


def apply_classification(
    change: DetectedChange, classification: Classification,
) -> DetectedChange:
    """Return a copy of *change* carrying the enrichment verdict."""
    return dataclasses.replace(
        change,
        change_type=classification.change_type,
        severity=classification.severity,
        rationale=classification.rationale,
        recommended_actions=classification.recommended_actions,
    )


class ChangeEnricher:
    """Classifies detected changes with the Anthropic Messages API."""

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.settings = Settings()
        self.model = model or self.settings.ENRICHMENT_MODEL
        self.client = Anthropic(api_key=api_key)
        logger.debug("ChangeEnricher initialised (model=%s)", self.model)

    @classmethod
    def from_settings(cls) -> "ChangeEnricher | None":
        """Build an enricher, or ``None`` when no API key is configured."""
        if not Settings.ANTHROPIC_API_KEY:
            logger.info("ANTHROPIC_API_KEY not set, enrichment disabled")
            return None
        return cls(api_key=Settings.ANTHROPIC_API_KEY)

    def _build_prompt(self, before: str, after: str, url: str) -> str:
        limit = self.settings.ENRICHMENT_EXCERPT_CHARS
        return _USER_PROMPT.format(
            url=url, before=before[:limit], after=after[:limit],
        )

    def _call_api(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.settings.ENRICHMENT_MAX_TOKENS,
            temperature=self.settings.ENRICHMENT_TEMPERATURE,
            system=_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        if not response.content:
            raise EnrichmentError("Empty response from classification model")
        return str(response.content[0].text)

    async def classify(
        self, before: str, after: str, url: str,
    ) -> Classification:
        """Ask the model for a type/severity/rationale verdict.

        Raises :class:`EnrichmentError` on any API or format failure.
        """
        prompt = self._build_prompt(before, after, url)
        try:
            text = await asyncio.to_thread(self._call_api, prompt)
        except APIError as exc:
            raise EnrichmentError(
                f"Classification request failed: {exc}"
            ) from exc

        classification = parse_classification(text)
        logger.info(
            "Enriched change for %s: %s/%s",
            url,
            classification.change_type,
            classification.severity,
        )
        return classification
