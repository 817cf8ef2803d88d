# backend/autopen/schemas/inputs.py
from typing import Any, Dict, List

from pydantic import BaseModel, field_validator

from ..models.brain_dump import BrainDumpStatus
from ..models.product import ProductStatus

MAX_TITLE_LEN = 300
MAX_DESCRIPTION_LEN = 4000


def _blank_to_none(v):
    if v is None:
        return None
    if isinstance(v, str):
        stripped = v.strip()
        return stripped or None
    return v


def _check_title(v: str | None) -> str | None:
    if v is None:
        return None
    if len(v) > MAX_TITLE_LEN:
        raise ValueError(f"title must be at most {MAX_TITLE_LEN} characters")
    return v


class ProductCreate(BaseModel):
    title: str
    type: str = "ebook"
    status: str = ProductStatus.DRAFT
    project_id: str | None = None
    metadata: Dict[str, Any] | None = None

    @field_validator("title", "project_id", mode="before")
    @classmethod
    def _strip(cls, v):
        return _blank_to_none(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str:
        if not v:
            raise ValueError("title must not be empty")
        return _check_title(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in ProductStatus.ALL:
            raise ValueError(f"status must be one of {', '.join(ProductStatus.ALL)}")
        return v


class ProductUpdate(BaseModel):
    title: str | None = None
    type: str | None = None
    status: str | None = None
    project_id: str | None = None
    metadata: Dict[str, Any] | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip(cls, v):
        return _blank_to_none(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        return _check_title(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str | None) -> str | None:
        if v is not None and v not in ProductStatus.ALL:
            raise ValueError(f"status must be one of {', '.join(ProductStatus.ALL)}")
        return v


class BrainDumpCreate(BaseModel):
    title: str = "Untitled Brain Dump"
    description: str | None = None
    content: str = ""
    status: str = BrainDumpStatus.DRAFT
    project_id: str | None = None
    metadata: Dict[str, Any] | None = None

    @field_validator("description", mode="before")
    @classmethod
    def _strip(cls, v):
        return _blank_to_none(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_DESCRIPTION_LEN:
            raise ValueError(f"description must be at most {MAX_DESCRIPTION_LEN} characters")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in BrainDumpStatus.ALL:
            raise ValueError(f"status must be one of {', '.join(BrainDumpStatus.ALL)}")
        return v


class BrainDumpUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    content: str | None = None
    status: str | None = None
    metadata: Dict[str, Any] | None = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str | None) -> str | None:
        if v is not None and v not in BrainDumpStatus.ALL:
            raise ValueError(f"status must be one of {', '.join(BrainDumpStatus.ALL)}")
        return v


class BrainDumpFromWorkflow(BaseModel):
    title: str | None = None
    content: str
    analyzed_content: Dict[str, Any] | None = None
    files: List[Dict[str, Any]] | None = None
    links: List[Dict[str, Any]] | None = None


class ProjectCreate(BaseModel):
    title: str
    description: str | None = None
    status: str = "draft"
    content: Dict[str, Any] | None = None
    metadata: Dict[str, Any] | None = None

    @field_validator("title", mode="before")
    @classmethod
    def _strip(cls, v):
        return _blank_to_none(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str:
        if not v:
            raise ValueError("title must not be empty")
        return _check_title(v)


class ProjectUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    status: str | None = None
    content: Dict[str, Any] | None = None
    metadata: Dict[str, Any] | None = None


class CreatorContentCreate(BaseModel):
    title: str
    type: str
    status: str = "draft"
    description: str | None = None
    content: str | None = None
    project_id: str | None = None
    workflow_step: str | None = None
    metadata: Dict[str, Any] | None = None


class CreatorContentUpdate(BaseModel):
    title: str | None = None
    type: str | None = None
    status: str | None = None
    description: str | None = None
    content: str | None = None
    workflow_step: str | None = None
    generation_progress: int | None = None
    metadata: Dict[str, Any] | None = None
