# backend/autopen/schemas/views.py
from datetime import datetime
from typing import Any, Dict, List, Literal

from pydantic import BaseModel

from ..models.brain_dump import SavedBrainDump
from ..models.product import Product
from ..models.project import Project
from ..services.errors import DataAccessError, SchemaNotProvisionedError
from ..services.product_types import product_category
from ..services.progress import coerce_count, product_progress
from ..services.status_badges import status_badge
from ..services.workflow import edit_url


class BadgeOut(BaseModel):
    bucket: str
    label: str
    bg: str
    text: str
    border: str
    dot: str


def _badge(status: str | None) -> BadgeOut:
    b = status_badge(status)
    return BadgeOut(bucket=b.bucket, label=b.label, bg=b.bg, text=b.text, border=b.border, dot=b.dot)


class ProductCard(BaseModel):
    id: str
    source: str
    title: str
    type: str
    status: str
    category: str
    progress: int
    badge: BadgeOut
    project_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    summary: str | None = None
    cover_image: str | None = None
    can_continue: bool
    edit_url: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductCard":
        metadata = product.metadata or {}
        return cls(
            id=product.id,
            source=product.source,
            title=product.title,
            type=product.type,
            status=product.status,
            category=product_category(product.type, metadata),
            progress=product_progress(product),
            badge=_badge(product.status),
            project_id=product.project_id,
            created_at=product.created_at,
            updated_at=product.updated_at,
            summary=metadata.get("summary") if isinstance(metadata.get("summary"), str) else None,
            cover_image=metadata.get("coverImage") if isinstance(metadata.get("coverImage"), str) else None,
            can_continue=product.status not in ("complete", "published"),
            edit_url=edit_url(product.id),
        )


class ProductDetail(ProductCard):
    metadata: Dict[str, Any] | None = None
    word_count: int | None = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductDetail":
        card = ProductCard.from_product(product)
        word_count = (product.metadata or {}).get("wordCount")
        return cls(
            **card.model_dump(),
            metadata=product.metadata,
            word_count=word_count if isinstance(word_count, int) and not isinstance(word_count, bool) else None,
        )


class BrainDumpCard(BaseModel):
    id: str
    title: str
    description: str | None = None
    status: str
    badge: BadgeOut
    word_count: int = 0
    file_count: int = 0
    link_count: int = 0
    summary: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_brain_dump(cls, dump: SavedBrainDump) -> "BrainDumpCard":
        metadata = dump.metadata or {}
        return cls(
            id=dump.id,
            title=dump.title,
            description=dump.description,
            status=dump.status,
            badge=_badge(dump.status),
            word_count=coerce_count(metadata.get("wordCount")),
            file_count=coerce_count(metadata.get("fileCount")),
            link_count=coerce_count(metadata.get("linkCount")),
            summary=metadata.get("summary") if isinstance(metadata.get("summary"), str) else None,
            created_at=dump.created_at,
            updated_at=dump.updated_at,
        )


class BrainDumpDetail(BrainDumpCard):
    content: str | None = None
    metadata: Dict[str, Any] | None = None

    @classmethod
    def from_brain_dump(cls, dump: SavedBrainDump) -> "BrainDumpDetail":
        card = BrainDumpCard.from_brain_dump(dump)
        return cls(**card.model_dump(), content=dump.content, metadata=dump.metadata)


class ProjectCard(BaseModel):
    id: str
    title: str
    description: str | None = None
    status: str
    badge: BadgeOut
    section_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_project(cls, project: Project) -> "ProjectCard":
        return cls(
            id=project.id,
            title=project.title,
            description=project.description,
            status=project.status,
            badge=_badge(project.status),
            section_count=len(project.sections),
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class ProjectDetail(ProjectCard):
    content: Dict[str, Any] | None = None
    metadata: Dict[str, Any] | None = None

    @classmethod
    def from_project(cls, project: Project) -> "ProjectDetail":
        card = ProjectCard.from_project(project)
        return cls(**card.model_dump(), content=project.content, metadata=project.metadata)


class ErrorPanel(BaseModel):
    """Full-page error state with a retry action."""

    kind: Literal["error"] = "error"
    message: str
    retry: str
    # operator-facing remediation, only for schema failures
    remediation: str | None = None

    @classmethod
    def for_failure(cls, message: str, retry: str, exc: DataAccessError | None = None) -> "ErrorPanel":
        remediation = exc.setup_instructions if isinstance(exc, SchemaNotProvisionedError) else None
        return cls(message=message, retry=retry, remediation=remediation)


class NotFoundPanel(BaseModel):
    kind: Literal["not_found"] = "not_found"
    message: str
    back_to: str


class ConfirmationPrompt(BaseModel):
    kind: Literal["confirm"] = "confirm"
    message: str
    confirm_url: str


class ListView(BaseModel):
    items: List[Any]
    # non-fatal notice, e.g. served from the offline cache
    notice: str | None = None


class ContinueResponse(BaseModel):
    navigate_to: str | None = None
    resume_context: Dict[str, Any] | None = None
    noop: bool = False
