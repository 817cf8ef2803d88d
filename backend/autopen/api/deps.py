from typing import AsyncIterator
import logging

from fastapi import Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..services.backend_client import BackendClient
from ..services.repositories import RepositoryRegistry, get_repositories
from ..services.workflow import SessionHandoff

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


def require_access_token(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> str:
    """
    Bearer-token authentication.

    The token is the user's hosted-backend access token; it is forwarded
    as-is and validated by the backend on first use.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="User not authenticated")
    return credentials.credentials


async def get_registry(
    access_token: str = Security(require_access_token),
) -> AsyncIterator[RepositoryRegistry]:
    client = BackendClient(access_token=access_token)
    registry = get_repositories(client)
    try:
        yield registry
    finally:
        await registry.aclose()


def get_session(x_session_id: str | None = Header(default=None, alias="X-Session-Id")) -> SessionHandoff:
    """Session-scoped handoff storage, keyed by the browser session id."""
    if not x_session_id or not x_session_id.strip():
        raise HTTPException(status_code=400, detail="X-Session-Id header is required")
    return SessionHandoff(x_session_id.strip())
