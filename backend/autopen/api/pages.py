"""
Shared list / detail / delete page behaviour for every entity router.

Repositories never raise; each helper reads the repository's ``error`` and
``last_exception`` after the call and turns them into a panel.
"""
from typing import Any, Awaitable, Callable, Iterable, Optional

from fastapi import Response
from fastapi.responses import JSONResponse

from ..schemas.views import ConfirmationPrompt, ErrorPanel, ListView, NotFoundPanel
from ..services.errors import (
    AuthenticationError,
    DataAccessError,
    InvalidIdentifierError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    SchemaNotProvisionedError,
)

ERROR_STATUS_CODES = (
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (InvalidIdentifierError, 400),
    (NotFoundError, 404),
    (NetworkError, 503),
    (SchemaNotProvisionedError, 503),
)


def status_for(exc: DataAccessError | None) -> int:
    for exc_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return 502


def error_response(repo: Any, retry: str) -> JSONResponse:
    panel = ErrorPanel.for_failure(
        repo.error or "Something went wrong. Please try again.",
        retry,
        repo.last_exception,
    )
    return JSONResponse(status_code=status_for(repo.last_exception), content=panel.model_dump())


def not_found_response(label: str, back_to: str) -> JSONResponse:
    panel = NotFoundPanel(
        message=f"{label} not found. It may have been deleted or you may not have access.",
        back_to=back_to,
    )
    return JSONResponse(status_code=404, content=panel.model_dump())


def list_page(repo: Any, items: Optional[Iterable[Any]], to_card: Callable[[Any], Any], retry: str):
    if items is None:
        return error_response(repo, retry)
    # a list alongside an error means cached data was served
    return ListView(items=[to_card(i) for i in items], notice=repo.error)


def detail_page(
    repo: Any,
    found: Any,
    to_detail: Callable[[Any], Any],
    *,
    label: str,
    back_to: str,
    retry: str,
):
    if found is not None:
        return to_detail(found)
    if repo.last_exception is None or isinstance(repo.last_exception, NotFoundError):
        return not_found_response(label, back_to)
    return error_response(repo, retry)


def mutation_page(repo: Any, result: Any, to_detail: Callable[[Any], Any], retry: str):
    if result is None:
        return error_response(repo, retry)
    return to_detail(result)


def confirmation_response(label: str, confirm_url: str) -> JSONResponse:
    prompt = ConfirmationPrompt(
        message=f"Are you sure you want to delete this {label}? This action cannot be undone.",
        confirm_url=confirm_url,
    )
    return JSONResponse(status_code=409, content=prompt.model_dump())


async def delete_page(
    repo: Any,
    confirm: bool,
    *,
    label: str,
    confirm_url: str,
    retry: str,
    delete: Callable[[], Awaitable[bool]],
):
    """Deletion happens only after an explicit confirmation round-trip."""
    if not confirm:
        return confirmation_response(label, confirm_url)
    if await delete():
        return Response(status_code=204)
    return error_response(repo, retry)
