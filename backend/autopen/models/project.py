from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class ProjectSection(BaseModel):
    id: str
    title: str = ""
    content: str = ""

    model_config = ConfigDict(extra="allow")


class Project(BaseModel):
    id: str
    title: str = "Untitled Project"
    description: str | None = None
    type: str | None = None
    status: str = "draft"
    # nested JSON; ``sections`` is an ordered list of ProjectSection-shaped dicts
    content: Dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_id: str | None = None
    metadata: Dict[str, Any] | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("title", "status", mode="before")
    @classmethod
    def _null_to_default(cls, v, info):
        # nullable columns fall back to the field default
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @property
    def sections(self) -> List[ProjectSection]:
        raw = (self.content or {}).get("sections")
        if not isinstance(raw, list):
            return []
        sections = []
        for s in raw:
            if not isinstance(s, dict) or not s.get("id"):
                continue
            try:
                sections.append(ProjectSection.model_validate(s))
            except ValidationError:
                continue
        return sections
