# rivalwatch/detection/change_detector.py

"""Decide whether two snapshots differ enough to report a change."""

import logging
import uuid
from datetime import datetime

from rivalwatch.config.settings import Settings
from rivalwatch.detection.change_classifier import (
    DEFAULT_CLASSIFIER,
    ChangeClassifier,
)
from rivalwatch.detection.similarity import compute_similarity
from rivalwatch.models.change import DetectedChange
from rivalwatch.models.snapshot import Snapshot

logger = logging.getLogger("rivalwatch.detector")


def detect_change(
    old_snapshot: Snapshot,
    new_snapshot: Snapshot,
    threshold: float = Settings.SIMILARITY_THRESHOLD,
    classifier: ChangeClassifier | None = None,
) -> DetectedChange | None:
    """Compare two snapshots of the same page.

    Returns ``None`` when the content hashes match or when the token
    similarity is at or above *threshold*.  Otherwise the change is
    classified, ranked and summarised by *classifier* (the default
    keyword heuristics when omitted).
    """
    if old_snapshot.content_hash == new_snapshot.content_hash:
        logger.debug(
            "Content hash identical for %s, no change",
            new_snapshot.url,
        )
        return None

    similarity = compute_similarity(
        old_snapshot.normalized_text, new_snapshot.normalized_text,
    )
    if similarity >= threshold:
        logger.debug(
            "Similarity %.1f%% >= threshold %.1f%% for %s",
            similarity * 100,
            threshold * 100,
            new_snapshot.url,
        )
        return None

    rules = classifier or DEFAULT_CLASSIFIER
    before = old_snapshot.normalized_text
    after = new_snapshot.normalized_text

    change_type = rules.classify(before, after)
    severity = rules.severity(change_type, similarity)
    summary = rules.summarize(before, after, change_type, similarity)

    logger.info(
        "Change detected for %s: %s/%s (similarity %.1f%%) %s",
        new_snapshot.url,
        change_type,
        severity,
        similarity * 100,
        summary,
    )

    return DetectedChange(
        id=f"change-{uuid.uuid4().hex}",
        competitor_id=old_snapshot.competitor_id,
        url=old_snapshot.url,
        old_snapshot_id=old_snapshot.id,
        new_snapshot_id=new_snapshot.id,
        change_type=change_type,
        severity=severity,
        before_excerpt=before,
        after_excerpt=after,
        similarity_score=similarity,
        diff_summary=summary,
        detected_at=datetime.now(),
    )
