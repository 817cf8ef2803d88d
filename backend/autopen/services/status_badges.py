from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StatusBadge:
    bucket: str
    label: str
    bg: str
    text: str
    border: str
    dot: str


BADGE_VARIANTS = {
    "draft": StatusBadge(
        bucket="draft",
        label="Draft",
        bg="bg-[#F9F7F4]",
        text="text-[#888888]",
        border="border-[#E8E8E8]",
        dot="bg-[#888888]",
    ),
    "complete": StatusBadge(
        bucket="complete",
        label="Complete",
        bg="bg-[#F1F8F4]",
        text="text-[#10B981]",
        border="border-[#D1E9D8]",
        dot="bg-[#10B981]",
    ),
    "inProgress": StatusBadge(
        bucket="inProgress",
        label="In Progress",
        bg="bg-[#738996]/10",
        text="text-[#738996]",
        border="border-[#738996]/20",
        dot="bg-[#738996]",
    ),
    "published": StatusBadge(
        bucket="published",
        label="Published",
        bg="bg-[#ccb595]/10",
        text="text-[#ccb595]",
        border="border-[#ccb595]/20",
        dot="bg-[#ccb595]",
    ),
    "generating": StatusBadge(
        bucket="generating",
        label="Generating",
        bg="bg-[#8B5CF6]/10",
        text="text-[#8B5CF6]",
        border="border-[#8B5CF6]/20",
        dot="bg-[#8B5CF6]",
    ),
}

# status -> bucket, for statuses whose name differs from their bucket
STATUS_BUCKETS = {
    "in_progress": "inProgress",
    "pending": "inProgress",
    "processing": "generating",
}

# statuses that keep their own label inside a shared bucket
LABEL_OVERRIDES = {
    "pending": "Pending",
    "processing": "Processing",
}


def status_badge(status: str | None) -> StatusBadge:
    """Badge for any status string; unknown statuses get the draft badge."""
    status = status or ""
    bucket = STATUS_BUCKETS.get(status, status)
    variant = BADGE_VARIANTS.get(bucket, BADGE_VARIANTS["draft"])
    label = LABEL_OVERRIDES.get(status)
    if label is None:
        return variant
    return StatusBadge(
        bucket=variant.bucket,
        label=label,
        bg=variant.bg,
        text=variant.text,
        border=variant.border,
        dot=variant.dot,
    )


def status_label(status: str | None) -> str:
    return status_badge(status).label
