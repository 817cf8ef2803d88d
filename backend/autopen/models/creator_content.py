from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, field_validator


class CreatorContent(BaseModel):
    """Raw row of the ``creator_contents`` table."""

    id: str
    user_id: str | None = None
    project_id: str | None = None
    title: str = "Untitled"
    description: str | None = None
    content: str | None = None
    type: str = "other"
    status: str = "draft"
    metadata: Dict[str, Any] | None = None
    version: int | None = 1
    workflow_step: str | None = None
    generation_progress: int | None = 0
    ai_model_settings: Dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "type", "status", mode="before")
    @classmethod
    def _null_to_default(cls, v, info):
        # nullable columns fall back to the field default
        if v is None:
            return cls.model_fields[info.field_name].default
        return v
