"""
Progress estimate (0-100) for a product, derived only from its status,
type and metadata.
"""
from __future__ import annotations

import math
from typing import Any, Mapping

COMPLETE_STATUSES = {"published", "complete"}

WORD_COUNT_TARGETS = {
    "blog": 1500,
    "ebook": 10000,
    "course": 5000,
}
DEFAULT_WORD_COUNT_TARGET = 3000

DRAFT_PROGRESS_CAP = 80
DRAFT_PROGRESS_FLOOR = 10

WORKFLOW_STEP_PROGRESS = {
    "brain-dump": 30,
    "outline": 45,
    "ebook-writing": 60,
    "review": 75,
    "editing": 85,
    "final-review": 95,
}
UNKNOWN_STEP_PROGRESS = 60
IN_PROGRESS_DEFAULT = 50

GENERATING_PROGRESS = 40
PENDING_PROGRESS = 20
FALLBACK_PROGRESS = 15


def coerce_count(raw: Any) -> int:
    """Non-negative int from an open metadata value; anything unusable is 0."""
    if isinstance(raw, bool):
        return 0
    try:
        count = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(count, 0)


def _word_count(metadata: Mapping[str, Any]) -> int:
    return coerce_count(metadata.get("wordCount"))


def word_count_target(product_type: str | None) -> int:
    return WORD_COUNT_TARGETS.get(product_type or "", DEFAULT_WORD_COUNT_TARGET)


def _draft_progress(product_type: str | None, words: int) -> int:
    if words <= 0:
        return 0
    # half-up rounding
    from_words = math.floor(words / word_count_target(product_type) * 100 + 0.5)
    return max(min(from_words, DRAFT_PROGRESS_CAP), DRAFT_PROGRESS_FLOOR)


def _in_progress_progress(metadata: Mapping[str, Any], words: int) -> int:
    step = metadata.get("workflow_step")
    if step:
        if isinstance(step, str) and step in WORKFLOW_STEP_PROGRESS:
            return WORKFLOW_STEP_PROGRESS[step]
        return UNKNOWN_STEP_PROGRESS

    if words > 5000:
        return 75
    if words > 2000:
        return 65
    if words > 0:
        return 55
    return IN_PROGRESS_DEFAULT


def calculate_progress(
    status: str | None,
    product_type: str | None,
    metadata: Mapping[str, Any] | None = None,
) -> int:
    metadata = metadata or {}
    words = _word_count(metadata)

    if status in COMPLETE_STATUSES:
        return 100
    if status == "draft":
        return _draft_progress(product_type, words)
    if status == "in_progress":
        return _in_progress_progress(metadata, words)
    if status in ("generating", "processing"):
        return GENERATING_PROGRESS
    if status == "pending":
        return PENDING_PROGRESS
    return FALLBACK_PROGRESS


def product_progress(product: Any) -> int:
    """``calculate_progress`` for anything with status/type/metadata attributes."""
    return calculate_progress(
        getattr(product, "status", None),
        getattr(product, "type", None),
        getattr(product, "metadata", None),
    )
