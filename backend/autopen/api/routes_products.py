import logging

from fastapi import APIRouter, Depends

from ..core.config import get_settings
from ..schemas.inputs import ProductCreate, ProductUpdate
from ..schemas.views import ContinueResponse, ProductCard, ProductDetail
from ..services.repositories import RepositoryRegistry
from ..services.retry import retry_refresh
from ..services.workflow import SessionHandoff, continue_product
from .deps import get_registry, get_session
from .pages import delete_page, detail_page, list_page, mutation_page

router = APIRouter(tags=["products"])

settings = get_settings()
logger = logging.getLogger(__name__)

LIST_RETRY = f"{settings.API_PREFIX}/products/refresh"


def _detail_url(product_id: str) -> str:
    return f"{settings.API_PREFIX}/products/{product_id}"


@router.get("/products")
async def list_products(registry: RepositoryRegistry = Depends(get_registry)):
    repo = registry.products
    items = await repo.fetch()
    return list_page(repo, items, ProductCard.from_product, LIST_RETRY)


@router.post("/products/refresh")
async def refresh_products(registry: RepositoryRegistry = Depends(get_registry)):
    """Manual refresh / retry; network failures are retried with backoff."""
    repo = registry.products
    items = await retry_refresh(repo)
    return list_page(repo, items, ProductCard.from_product, LIST_RETRY)


@router.post("/products", status_code=201)
async def create_product(
    payload: ProductCreate,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.products
    created = await repo.create(payload)
    return mutation_page(repo, created, ProductDetail.from_product, LIST_RETRY)


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.products
    product = await repo.get_by_id(product_id)
    return detail_page(
        repo,
        product,
        ProductDetail.from_product,
        label="Product",
        back_to="/products",
        retry=_detail_url(product_id),
    )


@router.patch("/products/{product_id}")
async def update_product(
    product_id: str,
    payload: ProductUpdate,
    source: str | None = None,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.products
    updated = await repo.update(product_id, payload, source=source)
    return mutation_page(repo, updated, ProductDetail.from_product, _detail_url(product_id))


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    source: str | None = None,
    confirm: bool = False,
    registry: RepositoryRegistry = Depends(get_registry),
):
    repo = registry.products
    confirm_url = f"{_detail_url(product_id)}?confirm=true"
    if source:
        confirm_url += f"&source={source}"
    return await delete_page(
        repo,
        confirm,
        label="product",
        confirm_url=confirm_url,
        retry=LIST_RETRY,
        delete=lambda: repo.delete(product_id, source=source),
    )


@router.post("/products/{product_id}/continue")
async def continue_product_workflow(
    product_id: str,
    registry: RepositoryRegistry = Depends(get_registry),
    session: SessionHandoff = Depends(get_session),
):
    repo = registry.products
    product = await repo.get_by_id(product_id)
    if product is None:
        return detail_page(
            repo,
            None,
            ProductDetail.from_product,
            label="Product",
            back_to="/products",
            retry=_detail_url(product_id),
        )

    target = continue_product(product, session)
    logger.info(
        "Continue action for product %s",
        product_id,
        extra={"step": "continue_workflow", "entity": "products"},
    )
    return ContinueResponse(
        navigate_to=target.navigate_to,
        resume_context=target.resume_context,
        noop=target.is_noop,
    )


@router.get("/session/resume-workflow")
def consume_resume_workflow(session: SessionHandoff = Depends(get_session)):
    """Single-use: the context is cleared once read."""
    return {"resume_context": session.consume_resume_context()}
