import logging

from fastapi import APIRouter, Depends

from ..core.config import get_settings
from ..schemas.inputs import BrainDumpCreate, BrainDumpFromWorkflow, BrainDumpUpdate
from ..schemas.views import BrainDumpCard, BrainDumpDetail
from ..services.repositories import RepositoryRegistry
from ..services.retry import retry_refresh
from .deps import get_registry
from .pages import delete_page, detail_page, list_page, mutation_page

router = APIRouter(tags=["brain-dumps"])

settings = get_settings()
logger = logging.getLogger(__name__)

LIST_RETRY = f"{settings.API_PREFIX}/brain-dumps/refresh"


def _detail_url(brain_dump_id: str) -> str:
    return f"{settings.API_PREFIX}/brain-dumps/{brain_dump_id}"


@router.get("/brain-dumps")
async def list_brain_dumps(registry: RepositoryRegistry = Depends(get_registry)):
    repo = registry.brain_dumps
    items = await repo.fetch()
    return list_page(repo, items, BrainDumpCard.from_brain_dump, LIST_RETRY)


@router.post("/brain-dumps/refresh")
async def refresh_brain_dumps(registry: RepositoryRegistry = Depends(get_registry)):
    repo = registry.brain_dumps
    items = await retry_refresh(repo)
    return list_page(repo, items, BrainDumpCard.from_brain_dump, LIST_RETRY)


@router.post("/brain-dumps", status_code=201)
async def create_brain_dump(
    payload: BrainDumpCreate,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.brain_dumps
    created = await repo.create(payload)
    return mutation_page(repo, created, BrainDumpDetail.from_brain_dump, LIST_RETRY)


@router.post("/brain-dumps/from-workflow", status_code=201)
async def save_brain_dump_from_workflow(
    payload: BrainDumpFromWorkflow,
    registry: RepositoryRegistry = Depends(get_registry),
):
    """
    Save a dump captured in the authoring workflow.

    Generic titles are replaced by a generated one.
    """
    repo = registry.brain_dumps
    saved = await repo.save_from_workflow(
        payload.title,
        payload.content,
        analyzed_content=payload.analyzed_content,
        files=payload.files,
        links=payload.links,
    )
    return mutation_page(repo, saved, BrainDumpDetail.from_brain_dump, LIST_RETRY)


@router.get("/brain-dumps/{brain_dump_id}")
async def get_brain_dump(
    brain_dump_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.brain_dumps
    dump = await repo.get_by_id(brain_dump_id)
    return detail_page(
        repo,
        dump,
        BrainDumpDetail.from_brain_dump,
        label="Brain dump",
        back_to="/brain-dumps",
        retry=_detail_url(brain_dump_id),
    )


@router.patch("/brain-dumps/{brain_dump_id}")
async def update_brain_dump(
    brain_dump_id: str,
    payload: BrainDumpUpdate,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.brain_dumps
    updated = await repo.update(brain_dump_id, payload)
    return mutation_page(repo, updated, BrainDumpDetail.from_brain_dump, _detail_url(brain_dump_id))


@router.delete("/brain-dumps/{brain_dump_id}")
async def delete_brain_dump(
    brain_dump_id: str,
    confirm: bool = False,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.brain_dumps
    return await delete_page(
        repo,
        confirm,
        label="brain dump",
        confirm_url=f"{_detail_url(brain_dump_id)}?confirm=true",
        retry=LIST_RETRY,
        delete=lambda: repo.delete(brain_dump_id),
    )


@router.post("/projects/{project_id}/brain-dump")
async def get_or_create_project_brain_dump(
    project_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.brain_dumps
    dump = await repo.get_or_create_for_project(project_id)
    return mutation_page(
        repo,
        dump,
        BrainDumpDetail.from_brain_dump,
        f"{settings.API_PREFIX}/projects/{project_id}/brain-dump",
    )
