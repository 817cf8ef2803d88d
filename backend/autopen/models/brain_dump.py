from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, field_validator


class BrainDumpStatus:
    DRAFT = "draft"
    ANALYZED = "analyzed"
    COMPLETE = "complete"

    ALL = (DRAFT, ANALYZED, COMPLETE)


class SavedBrainDump(BaseModel):
    id: str
    title: str = "Untitled Brain Dump"
    description: str | None = None
    content: str | None = None
    status: str = BrainDumpStatus.DRAFT
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_id: str | None = None
    project_id: str | None = None
    # wordCount, fileCount, linkCount, summary, keywords, analyzedContent,
    # structuredDocument, files, links
    metadata: Dict[str, Any] | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "status", mode="before")
    @classmethod
    def _null_to_default(cls, v, info):
        # nullable columns fall back to the field default
        if v is None:
            return cls.model_fields[info.field_name].default
        return v
