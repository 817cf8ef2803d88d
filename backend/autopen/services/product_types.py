from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_TYPE = "other"

# Checked in order; the first rule with a matching fragment wins.
# "social" sits ahead of "blog" so "social media post" is not read as a blog post.
TYPE_RULES: Sequence[Tuple[str, Tuple[str, ...]]] = (
    ("ebook", ("ebook", "e-book")),
    ("social", ("social", "media")),
    ("blog", ("blog", "article", "post")),
    ("video", ("video", "script")),
    ("course", ("course", "lesson", "class")),
)

# Whole-word aliases that fragments would miss or mis-file
EXACT_ALIASES = {
    "book": "ebook",
}

CATEGORY_LABELS = {
    "ebook": "eBook",
    "brain_dump": "Notes",
    "course": "Course",
    "blog": "Blog",
}


def normalize_product_type(raw: str | None) -> str:
    """
    Map a free-form product type onto the canonical set.

    Unrecognised values pass through lower-cased so nothing is lost.
    """
    if raw is None:
        return DEFAULT_PRODUCT_TYPE

    normalized = str(raw).strip().lower()
    if not normalized:
        return DEFAULT_PRODUCT_TYPE

    if normalized in EXACT_ALIASES:
        return EXACT_ALIASES[normalized]

    for canonical, fragments in TYPE_RULES:
        if any(fragment in normalized for fragment in fragments):
            return canonical

    logger.debug("Unrecognized product type '%s'; passing through", raw)
    return normalized


def product_category(product_type: str | None, metadata: Mapping[str, Any] | None = None) -> str:
    """Display category: an explicit ``metadata.category`` string wins."""
    category = (metadata or {}).get("category")
    if isinstance(category, str) and category:
        return category

    product_type = product_type or DEFAULT_PRODUCT_TYPE
    if product_type in CATEGORY_LABELS:
        return CATEGORY_LABELS[product_type]
    return product_type[:1].upper() + product_type[1:]
