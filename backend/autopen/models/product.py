"""
Product: a content artifact (e-book, blog, course, ...) tracked through a
status lifecycle.

Products are read from more than one backing table, so the UI identity of a
product is ``(source, id)``, not ``id`` alone.
"""
from datetime import datetime
from typing import Any, Dict, Tuple

from pydantic import BaseModel, ConfigDict


class ProductStatus:
    """Status values a product row can carry."""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    PUBLISHED = "published"
    GENERATING = "generating"
    PENDING = "pending"
    PROCESSING = "processing"

    ALL = (DRAFT, IN_PROGRESS, COMPLETE, PUBLISHED, GENERATING, PENDING, PROCESSING)


class ProductSourceName:
    """Backing tables a product may be read from."""
    CREATOR_CONTENTS = "creator_contents"
    PROJECTS = "projects"


class Product(BaseModel):
    id: str
    title: str = "Untitled"
    type: str = "other"
    status: str = ProductStatus.DRAFT
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_id: str | None = None
    project_id: str | None = None
    # open bag: wordCount, summary, coverImage, generationInfo, workflow_step, category
    metadata: Dict[str, Any] | None = None
    source: str = ProductSourceName.CREATOR_CONTENTS

    model_config = ConfigDict(extra="ignore")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.id)
