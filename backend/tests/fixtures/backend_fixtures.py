"""
Shared fixtures for data-access tests.

``FakeBackend`` is an in-memory stand-in for the hosted REST + auth API,
served through ``httpx.MockTransport`` so the real ``BackendClient`` code
path (headers, params, error mapping) is exercised end to end.
"""
import json
import uuid
from typing import Any, Dict, List, Optional

import httpx

from autopen.services.backend_client import BackendClient
from autopen.services.caching import EntityCache, MemoryStore
from autopen.services.connectivity import ConnectivityState


USER_ID = "11111111-1111-4111-8111-111111111111"
OTHER_USER_ID = "22222222-2222-4222-8222-222222222222"
BASE_URL = "https://test-project.supabase.co"
ACCESS_TOKEN = "user-access-token"


# ---------------------------------------------------------------------------
# Sample rows
# ---------------------------------------------------------------------------

EBOOK_ID = "aaaaaaaa-0000-4000-8000-000000000001"
BLOG_ID = "aaaaaaaa-0000-4000-8000-000000000002"
LEGACY_PROJECT_ID = "bbbbbbbb-0000-4000-8000-000000000001"
SHARED_ID = "cccccccc-0000-4000-8000-000000000001"
MISSING_ID = "dddddddd-0000-4000-8000-000000000404"

CREATOR_CONTENT_ROWS: List[Dict[str, Any]] = [
    {
        "id": EBOOK_ID,
        "title": "The Quiet Garden",
        "type": "E-Book",
        "status": "draft",
        "created_at": "2024-03-01T10:00:00+00:00",
        "updated_at": "2024-03-05T10:00:00+00:00",
        "user_id": USER_ID,
        "project_id": LEGACY_PROJECT_ID,
        "metadata": {"wordCount": 2000},
    },
    {
        "id": BLOG_ID,
        "title": None,
        "type": "article",
        "status": "published",
        "created_at": "2024-02-01T10:00:00+00:00",
        "updated_at": "2024-02-02T10:00:00+00:00",
        "user_id": USER_ID,
        "project_id": None,
        "metadata": None,
    },
    {
        "id": SHARED_ID,
        "title": "Shared id, creator copy",
        "type": "course",
        "status": "in_progress",
        "created_at": "2024-01-01T10:00:00+00:00",
        "updated_at": "2024-01-10T10:00:00+00:00",
        "user_id": USER_ID,
        "project_id": None,
        "metadata": {"workflow_step": "outline"},
    },
]

PROJECT_ROWS: List[Dict[str, Any]] = [
    {
        "id": LEGACY_PROJECT_ID,
        "title": None,
        "type": None,
        "description": "An old project",
        "status": "in_progress",
        "created_at": "2023-12-01T10:00:00+00:00",
        "updated_at": "2024-03-10T10:00:00+00:00",
        "user_id": USER_ID,
        "content": {"sections": [{"id": "s1", "title": "Intro", "content": "..."}]},
        "metadata": None,
    },
    {
        "id": SHARED_ID,
        "title": "Shared id, project copy",
        "type": "course",
        "status": "draft",
        "created_at": "2023-11-01T10:00:00+00:00",
        "updated_at": "2023-11-02T10:00:00+00:00",
        "user_id": USER_ID,
        "content": None,
        "metadata": None,
    },
]


def brain_dump_row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "id": str(uuid.uuid4()),
        "title": "Morning notes",
        "description": None,
        "content": "some words here",
        "status": "draft",
        "created_at": "2024-03-01T10:00:00+00:00",
        "updated_at": "2024-03-01T10:00:00+00:00",
        "user_id": USER_ID,
        "project_id": None,
        "metadata": {"wordCount": 3},
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------

class FakeBackend:
    """
    Minimal PostgREST + GoTrue emulation.

    - Tables absent from ``tables`` answer like an unprovisioned schema.
    - ``offline = True`` makes every request fail at the transport level.
    - Every request is appended to ``requests``.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None, user_id: str = USER_ID) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self.user_id = user_id
        self.offline = False
        self.requests: List[httpx.Request] = []
        # table -> (status, body) forced for the next requests to that table
        self.failures: Dict[str, tuple] = {}

    # -- helpers ----------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self, connectivity: ConnectivityState | None = None, **kwargs: Any) -> BackendClient:
        return BackendClient(
            base_url=BASE_URL,
            anon_key="test-anon-key",
            access_token=kwargs.pop("access_token", ACCESS_TOKEN),
            connectivity=connectivity or ConnectivityState(),
            transport=self.transport(),
            **kwargs,
        )

    def table_requests(self, table: str, method: str | None = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.path == f"/rest/v1/{table}" and (method is None or r.method == method)
        ]

    @property
    def rest_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/rest/v1/")]

    # -- request handling -------------------------------------------------

    @staticmethod
    def _filters(request: httpx.Request) -> Dict[str, str]:
        filters = {}
        for key, value in request.url.params.items():
            if key in ("select", "order", "limit"):
                continue
            if value.startswith("eq."):
                filters[key] = value[3:]
        return filters

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, str]) -> bool:
        return all(str(row.get(k)) == v for k, v in filters.items())

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        if path == "/auth/v1/user":
            if request.headers.get("Authorization") != f"Bearer {ACCESS_TOKEN}":
                return httpx.Response(401, json={"msg": "invalid JWT"})
            return httpx.Response(200, json={"id": self.user_id, "email": "writer@example.com"})

        if path == "/rest/v1/" and request.method == "HEAD":
            return httpx.Response(200)

        table = path.removeprefix("/rest/v1/")
        if table in self.failures:
            status, body = self.failures[table]
            return httpx.Response(status, json=body)
        if table not in self.tables:
            return httpx.Response(
                404,
                json={"code": "42P01", "message": f'relation "public.{table}" does not exist'},
            )

        rows = self.tables[table]
        filters = self._filters(request)

        if request.method == "GET":
            found = [dict(r) for r in rows if self._matches(r, filters)]
            order = request.url.params.get("order")
            if order:
                column, _, direction = order.partition(".")
                found.sort(key=lambda r: r.get(column) or "", reverse=direction == "desc")
            limit = request.url.params.get("limit")
            if limit:
                found = found[: int(limit)]
            return httpx.Response(200, json=found)

        if request.method == "POST":
            row = json.loads(request.content)
            row.setdefault("id", str(uuid.uuid4()))
            rows.append(row)
            return httpx.Response(201, json=[dict(row)])

        if request.method == "PATCH":
            values = json.loads(request.content)
            changed = []
            for row in rows:
                if self._matches(row, filters):
                    row.update(values)
                    changed.append(dict(row))
            return httpx.Response(200, json=changed)

        if request.method == "DELETE":
            removed = [dict(r) for r in rows if self._matches(r, filters)]
            self.tables[table] = [r for r in rows if not self._matches(r, filters)]
            return httpx.Response(200, json=removed)

        return httpx.Response(405, json={"message": "method not allowed"})


def memory_cache(entity: str, store: MemoryStore | None = None, **kwargs: Any) -> EntityCache:
    return EntityCache(entity, store=store or MemoryStore(), **kwargs)
