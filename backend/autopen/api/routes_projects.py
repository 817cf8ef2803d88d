from fastapi import APIRouter, Depends

from ..core.config import get_settings
from ..schemas.inputs import ProjectCreate, ProjectUpdate
from ..schemas.views import ProjectCard, ProjectDetail
from ..services.repositories import RepositoryRegistry
from ..services.retry import retry_refresh
from .deps import get_registry
from .pages import delete_page, detail_page, list_page, mutation_page

router = APIRouter(tags=["projects"])

settings = get_settings()

LIST_RETRY = f"{settings.API_PREFIX}/projects/refresh"


def _detail_url(project_id: str) -> str:
    return f"{settings.API_PREFIX}/projects/{project_id}"


@router.get("/projects")
async def list_projects(registry: RepositoryRegistry = Depends(get_registry)):
    """
    Project list. When the backend is unreachable the last cached list is
    returned with an offline notice instead of an error panel.
    """
    repo = registry.projects
    items = await repo.fetch()
    return list_page(repo, items, ProjectCard.from_project, LIST_RETRY)


@router.post("/projects/refresh")
async def refresh_projects(registry: RepositoryRegistry = Depends(get_registry)):
    repo = registry.projects
    items = await retry_refresh(repo)
    return list_page(repo, items, ProjectCard.from_project, LIST_RETRY)


@router.post("/projects", status_code=201)
async def create_project(
    payload: ProjectCreate,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.projects
    created = await repo.create(payload)
    return mutation_page(repo, created, ProjectDetail.from_project, LIST_RETRY)


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.projects
    project = await repo.get_by_id(project_id)
    return detail_page(
        repo,
        project,
        ProjectDetail.from_project,
        label="Project",
        back_to="/projects",
        retry=_detail_url(project_id),
    )


@router.patch("/projects/{project_id}")
async def update_project(
    project_id: str,
    payload: ProjectUpdate,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.projects
    updated = await repo.update(project_id, payload)
    return mutation_page(repo, updated, ProjectDetail.from_project, _detail_url(project_id))


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    confirm: bool = False,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.projects
    return await delete_page(
        repo,
        confirm,
        label="project",
        confirm_url=f"{_detail_url(project_id)}?confirm=true",
        retry=LIST_RETRY,
        delete=lambda: repo.delete(project_id),
    )
