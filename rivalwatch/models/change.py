# rivalwatch/models/change.py

"""Coarse-grained page changes and their classification."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ChangeType = Literal["product", "pricing", "other"]
Severity = Literal["low", "medium", "high"]

CHANGE_TYPES: tuple[str, ...] = ("product", "pricing", "other")
SEVERITIES: tuple[str, ...] = ("low", "medium", "high")


@dataclass(frozen=True)
class Classification:
    """Type/severity verdict for a change, with optional reasoning."""

    change_type: ChangeType
    severity: Severity
    rationale: str = ""
    recommended_actions: tuple[str, ...] = ()


@dataclass(frozen=True)
class DetectedChange:
    """One change between two whole-page snapshots.

    Only created when the snapshots' hashes differ and their similarity
    falls below the detection threshold.
    """

    id: str
    competitor_id: str
    url: str
    old_snapshot_id: str
    new_snapshot_id: str
    change_type: ChangeType
    severity: Severity
    before_excerpt: str
    after_excerpt: str
    similarity_score: float
    diff_summary: str
    detected_at: datetime
    rationale: str | None = None
    recommended_actions: tuple[str, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-ready dict."""
        return {
            "id": self.id,
            "competitorId": self.competitor_id,
            "url": self.url,
            "oldSnapshotId": self.old_snapshot_id,
            "newSnapshotId": self.new_snapshot_id,
            "changeType": self.change_type,
            "severity": self.severity,
            "beforeExcerpt": self.before_excerpt,
            "afterExcerpt": self.after_excerpt,
            "similarityScore": self.similarity_score,
            "diffSummary": self.diff_summary,
            "rationale": self.rationale,
            "recommendedActions": list(self.recommended_actions),
            "detectedAt": self.detected_at.isoformat(),
        }
