from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import get_settings
from .connectivity import ConnectivityState
from .errors import AuthenticationError, NetworkError, error_from_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None = None


# access token -> last user the auth service confirmed for it
_session_users: Dict[str, AuthUser] = {}
MAX_REMEMBERED_SESSIONS = 1024


def _remember_user(access_token: str, user: AuthUser) -> None:
    if len(_session_users) >= MAX_REMEMBERED_SESSIONS and access_token not in _session_users:
        _session_users.pop(next(iter(_session_users)))
    _session_users[access_token] = user


@lru_cache(maxsize=1)
def get_connectivity() -> ConnectivityState:
    """Shared connectivity state for every client in this process."""
    return ConnectivityState()


class BackendClient:
    """
    Thin async wrapper over the hosted backend's REST and auth endpoints.

    - Every request carries the anon API key and a bearer token (the user's
      access token when one is known, the anon key otherwise).
    - Every request is bounded by a client-side timeout.
    - Every response marks the backend reachable; every transport failure
      marks it unreachable. Nothing is retried here.
    """

    def __init__(
        self,
        base_url: str | None = None,
        anon_key: str | None = None,
        access_token: str | None = None,
        *,
        timeout: float | None = None,
        connectivity: ConnectivityState | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or str(settings.SUPABASE_URL)).rstrip("/")
        self.anon_key = anon_key or settings.SUPABASE_ANON_KEY
        self.access_token = access_token
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS
        self.ping_timeout = settings.CONNECTIVITY_CHECK_TIMEOUT_SECONDS
        self.ping_memo_seconds = settings.CONNECTIVITY_MEMO_SECONDS
        self.connectivity = connectivity or get_connectivity()

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._default_headers(),
            transport=transport,
        )

    def _default_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=headers,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            self.connectivity.mark_offline()
            logger.error("Backend request timed out: %s %s", method, path, extra={"step": "request"})
            raise NetworkError("Request timeout: Could not connect to the backend") from e
        except httpx.TransportError as e:
            self.connectivity.mark_offline()
            logger.error("Backend transport error on %s %s: %s", method, path, e, extra={"step": "request"})
            raise NetworkError(f"Failed to fetch: {e}") from e

        # Any response at all means the backend is reachable
        self.connectivity.mark_online()

        if resp.status_code == 401:
            logger.warning(
                "Backend auth error on %s: %s",
                path,
                resp.text,
                extra={"status_code": 401},
            )
        elif resp.status_code >= 500:
            logger.warning(
                "Backend server error on %s: %s",
                path,
                resp.text,
                extra={"status_code": resp.status_code},
            )

        return resp

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def _raise_for_error(self, resp: httpx.Response) -> Any:
        body = self._decode(resp)
        if resp.status_code >= 400:
            raise error_from_response(resp.status_code, body)
        return body

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    async def get_user(self) -> AuthUser:
        """
        The signed-in user. While the auth service is unreachable the last
        user seen for this access token is returned, so cached data stays
        readable offline.
        """
        if not self.access_token:
            raise AuthenticationError("User not authenticated")

        try:
            resp = await self._request("GET", "/auth/v1/user")
        except NetworkError:
            known = _session_users.get(self.access_token)
            if known is None:
                raise
            logger.warning(
                "Auth service unreachable; using last known session user",
                extra={"user_id": known.id, "step": "get_user"},
            )
            return known

        if resp.status_code in (401, 403):
            raise AuthenticationError("User not authenticated")
        data = self._raise_for_error(resp)
        if not isinstance(data, dict) or not data.get("id"):
            raise AuthenticationError("User not authenticated")
        user = AuthUser(id=str(data["id"]), email=data.get("email"))
        _remember_user(self.access_token, user)
        return user

    # ------------------------------------------------------------------
    # table operations
    # ------------------------------------------------------------------

    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        return {column: f"eq.{value}" for column, value in (filters or {}).items()}

    async def select(
        self,
        table: str,
        *,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": columns}
        params.update(self._filter_params(filters))
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)

        resp = await self._request("GET", f"/rest/v1/{table}", params=params)
        data = self._raise_for_error(resp)
        return list(data or [])

    async def select_one(
        self,
        table: str,
        *,
        filters: Dict[str, Any],
        columns: str = "*",
    ) -> Optional[Dict[str, Any]]:
        """Zero-or-one row lookup; returns None when nothing matches."""
        rows = await self.select(table, filters=filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(self, table: str, row: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        data = self._raise_for_error(resp)
        return list(data or [])

    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        *,
        filters: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        resp = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )
        data = self._raise_for_error(resp)
        return list(data or [])

    async def delete(self, table: str, *, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Delete matching rows and return what was removed."""
        resp = await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        data = self._raise_for_error(resp)
        return list(data or [])

    # ------------------------------------------------------------------
    # connectivity
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        """
        Cheap reachability check against the REST root.

        A recent success is trusted without another round trip.
        """
        if self.connectivity.recently_connected(self.ping_memo_seconds):
            return True

        try:
            resp = await self._request("HEAD", "/rest/v1/", timeout=self.ping_timeout)
        except NetworkError:
            return False

        if resp.status_code < 400:
            logger.info("Backend connected")
            return True

        logger.warning("Backend connectivity check failed with status %s", resp.status_code)
        return False
