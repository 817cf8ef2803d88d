"""
Tests for ProductRepository: multi-source merge, caching, CRUD and the
error contract (never raises, sets ``error``).
"""
import asyncio
import contextvars

import httpx
import pytest

from autopen.models.product import Product
from autopen.schemas.inputs import ProductCreate, ProductUpdate
from autopen.services.backend_client import BackendClient
from autopen.services.caching import MemoryStore
from autopen.services.connectivity import ConnectivityState
from autopen.services.errors import BackendError, NotFoundError, SchemaNotProvisionedError
from autopen.services.product_types import product_category
from autopen.services.progress import product_progress
from autopen.services.repositories.products import ProductRepository, merge_by_priority

from tests.fixtures.backend_fixtures import (
    ACCESS_TOKEN,
    BASE_URL,
    BLOG_ID,
    CREATOR_CONTENT_ROWS,
    EBOOK_ID,
    LEGACY_PROJECT_ID,
    MISSING_ID,
    PROJECT_ROWS,
    SHARED_ID,
    USER_ID,
    FakeBackend,
    memory_cache,
)


def _repo(backend: FakeBackend, store: MemoryStore | None = None) -> ProductRepository:
    return ProductRepository(backend.client(), memory_cache("products", store))


def _standard_backend() -> FakeBackend:
    return FakeBackend({"creator_contents": CREATOR_CONTENT_ROWS, "projects": PROJECT_ROWS})


# ---------------------------------------------------------------------------
# Merge rule
# ---------------------------------------------------------------------------

class TestMergeByPriority:
    """Tests for the prioritized-source merge."""

    def test_higher_priority_source_wins_shared_id(self):
        first = [Product(id="x", title="first", source="creator_contents")]
        second = [
            Product(id="x", title="second", source="projects"),
            Product(id="y", title="only second", source="projects"),
        ]
        merged = merge_by_priority([first, second])
        assert [(p.id, p.title) for p in merged] == [("x", "first"), ("y", "only second")]

    def test_duplicates_within_one_source_kept_once(self):
        batch = [Product(id="x", title="a"), Product(id="x", title="b")]
        assert len(merge_by_priority([batch])) == 1

    def test_empty(self):
        assert merge_by_priority([[], []]) == []


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestFetch:
    """Tests for fetch / refresh."""

    def test_fetch_merges_sources_and_normalizes(self):
        backend = _standard_backend()
        repo = _repo(backend)

        items = asyncio.run(repo.fetch())

        assert repo.error is None
        by_id = {p.id: p for p in items}
        assert set(by_id) == {EBOOK_ID, BLOG_ID, SHARED_ID, LEGACY_PROJECT_ID}
        assert by_id[EBOOK_ID].type == "ebook"
        assert by_id[BLOG_ID].title == "Untitled"
        assert by_id[BLOG_ID].type == "blog"
        assert by_id[SHARED_ID].source == "creator_contents"
        legacy = by_id[LEGACY_PROJECT_ID]
        assert legacy.source == "projects"
        assert legacy.title == "Untitled Project"
        assert legacy.type == "project"
        assert legacy.project_id == LEGACY_PROJECT_ID

    def test_items_sorted_newest_first(self):
        repo = _repo(_standard_backend())
        items = asyncio.run(repo.fetch())
        stamps = [p.updated_at for p in items]
        assert stamps == sorted(stamps, reverse=True)

    def test_fetch_filters_by_owner(self):
        backend = _standard_backend()
        asyncio.run(_repo(backend).fetch())
        for request in backend.table_requests("creator_contents", "GET"):
            assert request.url.params["user_id"] == f"eq.{USER_ID}"

    def test_second_fetch_served_from_cache(self):
        backend = _standard_backend()
        store = MemoryStore()

        async def scenario():
            await _repo(backend, store).fetch()
            before = len(backend.rest_requests)
            second = _repo(backend, store)
            second.background_debounce = 10_000
            second._last_background_refresh = 10**12
            items = await second.fetch()
            return before, items

        before, items = asyncio.run(scenario())
        assert len(items) == 4
        assert len(backend.rest_requests) == before

    def test_refresh_twice_is_idempotent(self):
        repo = _repo(_standard_backend())

        async def scenario():
            first = await repo.refresh()
            second = await repo.refresh()
            return first, second

        first, second = asyncio.run(scenario())
        assert [p.key for p in first] == [p.key for p in second]
        assert first == second
        assert repo.items == second

    def test_one_missing_table_is_skipped(self):
        backend = FakeBackend({"creator_contents": CREATOR_CONTENT_ROWS})
        repo = _repo(backend)
        items = asyncio.run(repo.fetch())
        assert repo.error is None
        assert {p.source for p in items} == {"creator_contents"}

    def test_all_tables_missing_surfaces_schema_error(self):
        repo = _repo(FakeBackend({}))
        assert asyncio.run(repo.fetch()) is None
        assert isinstance(repo.last_exception, SchemaNotProvisionedError)
        assert repo.error.startswith("Database table not found")
        assert repo.items == []

    def test_network_failure_sets_error(self):
        backend = _standard_backend()
        backend.offline = True
        repo = _repo(backend)
        assert asyncio.run(repo.fetch()) is None
        assert repo.error == "Network connection issue: Unable to connect to the database"
        assert repo.is_loading is False

    def test_unauthenticated(self):
        backend = _standard_backend()
        repo = ProductRepository(backend.client(access_token=None), memory_cache("products"))
        assert asyncio.run(repo.fetch()) is None
        assert repo.error == "User not authenticated"
        assert backend.rest_requests == []


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestGetById:
    """Tests for get_by_id."""

    @pytest.mark.parametrize("bad_id", ["not-a-uuid", "", "123", "../etc/passwd"])
    def test_non_uuid_returns_none_without_network(self, bad_id):
        backend = _standard_backend()
        repo = _repo(backend)
        assert asyncio.run(repo.get_by_id(bad_id)) is None
        assert backend.requests == []

    def test_looks_up_sources_in_order(self):
        backend = _standard_backend()
        repo = _repo(backend)
        product = asyncio.run(repo.get_by_id(LEGACY_PROJECT_ID))
        assert product.source == "projects"
        tables = [r.url.path for r in backend.rest_requests]
        assert tables == ["/rest/v1/creator_contents", "/rest/v1/projects"]

    def test_first_source_wins(self):
        backend = _standard_backend()
        product = asyncio.run(_repo(backend).get_by_id(SHARED_ID))
        assert product.title == "Shared id, creator copy"
        assert len(backend.table_requests("projects")) == 0

    def test_missing_returns_none(self):
        repo = _repo(_standard_backend())
        assert asyncio.run(repo.get_by_id(MISSING_ID)) is None
        assert repo.error is None

    def test_record_cache_avoids_second_lookup(self):
        backend = _standard_backend()
        store = MemoryStore()

        async def scenario():
            await _repo(backend, store).get_by_id(EBOOK_ID)
            count = len(backend.rest_requests)
            again = await _repo(backend, store).get_by_id(EBOOK_ID)
            return count, again

        count, again = asyncio.run(scenario())
        assert again.id == EBOOK_ID
        assert len(backend.rest_requests) == count

    def test_ebook_draft_scenario(self):
        product = asyncio.run(_repo(_standard_backend()).get_by_id(EBOOK_ID))
        assert product_category(product.type, product.metadata) == "eBook"
        assert 10 <= product_progress(product) <= 80
        assert product_progress(product) == 20


class TestMutations:
    """Tests for create / update / delete."""

    def test_create_then_get_round_trip(self):
        backend = FakeBackend({"creator_contents": [], "projects": []})
        repo = _repo(backend)
        payload = ProductCreate(title="Field Notes", type="ebook", status="draft", metadata={"wordCount": 2000})

        async def scenario():
            created = await repo.create(payload)
            fetched = await repo.get_by_id(created.id)
            return created, fetched

        created, fetched = asyncio.run(scenario())
        assert fetched == created
        assert (fetched.title, fetched.type, fetched.status) == ("Field Notes", "ebook", "draft")
        assert fetched.metadata == {"wordCount": 2000}
        assert fetched.user_id == USER_ID
        assert backend.tables["creator_contents"][0]["user_id"] == USER_ID
        assert repo.items[0].id == created.id

    def test_create_normalizes_type(self):
        backend = FakeBackend({"creator_contents": [], "projects": []})
        created = asyncio.run(_repo(backend).create({"title": "Weekly", "type": "Blog Post"}))
        assert created.type == "blog"
        assert backend.tables["creator_contents"][0]["type"] == "blog"

    def test_update_goes_to_source_table(self):
        backend = _standard_backend()
        repo = _repo(backend)

        async def scenario():
            await repo.fetch()
            return await repo.update(LEGACY_PROJECT_ID, ProductUpdate(title="Renamed"))

        updated = asyncio.run(scenario())
        assert updated.title == "Renamed"
        assert updated.source == "projects"
        assert len(backend.table_requests("projects", "PATCH")) == 1
        assert backend.table_requests("creator_contents", "PATCH") == []
        in_memory = next(p for p in repo.items if p.id == LEGACY_PROJECT_ID)
        assert in_memory.title == "Renamed"

    def test_update_with_explicit_source(self):
        backend = _standard_backend()
        repo = _repo(backend)
        updated = asyncio.run(repo.update(SHARED_ID, {"status": "complete"}, source="projects"))
        assert updated.source == "projects"
        assert next(r for r in backend.tables["projects"] if r["id"] == SHARED_ID)["status"] == "complete"
        assert next(r for r in backend.tables["creator_contents"] if r["id"] == SHARED_ID)["status"] == "in_progress"

    def test_update_never_sends_ownership_columns(self):
        backend = _standard_backend()
        asyncio.run(_repo(backend).update(EBOOK_ID, {"title": "x", "user_id": "someone-else", "id": "other"}))
        row = next(r for r in backend.tables["creator_contents"] if r["id"] == EBOOK_ID)
        assert row["user_id"] == USER_ID

    def test_update_invalid_id(self):
        backend = _standard_backend()
        repo = _repo(backend)
        assert asyncio.run(repo.update("nope", {"title": "x"})) is None
        assert repo.error == "Invalid products ID format: nope"
        assert backend.requests == []

    def test_delete_removes_from_list(self):
        backend = _standard_backend()
        repo = _repo(backend)

        async def scenario():
            await repo.fetch()
            return await repo.delete(EBOOK_ID)

        assert asyncio.run(scenario()) is True
        assert EBOOK_ID not in {p.id for p in repo.items}
        assert EBOOK_ID not in {r["id"] for r in backend.tables["creator_contents"]}

    def test_delete_nonexistent_fails_and_keeps_list(self):
        backend = _standard_backend()
        repo = _repo(backend)

        async def scenario():
            await repo.fetch()
            before = list(repo.items)
            ok = await repo.delete(MISSING_ID)
            return before, ok

        before, ok = asyncio.run(scenario())
        assert ok is False
        assert repo.items == before
        assert isinstance(repo.last_exception, NotFoundError)
        assert repo.error

    def test_mutation_failure_does_not_raise(self):
        backend = _standard_backend()
        backend.failures["creator_contents"] = (500, {"message": "database exploded"})
        repo = _repo(backend)
        assert asyncio.run(repo.create({"title": "x"})) is None
        assert repo.error == "database exploded"

    def test_mutation_before_fetch_does_not_cache_partial_list(self):
        backend = _standard_backend()
        store = MemoryStore()

        async def scenario():
            await _repo(backend, store).fetch()
            # a fresh repository has not loaded the list
            created = await _repo(backend, store).create({"title": "Fresh"})
            return created, await _repo(backend, store).fetch()

        created, items = asyncio.run(scenario())
        assert {p.id for p in items} == {EBOOK_ID, BLOG_ID, SHARED_ID, LEGACY_PROJECT_ID, created.id}

    def test_update_in_lower_priority_source_keeps_winner_in_record_cache(self):
        backend = _standard_backend()
        store = MemoryStore()

        async def scenario():
            await _repo(backend, store).get_by_id(SHARED_ID)
            await _repo(backend, store).update(SHARED_ID, {"title": "Project copy"}, source="projects")
            return await _repo(backend, store).get_by_id(SHARED_ID)

        product = asyncio.run(scenario())
        assert product.source == "creator_contents"
        assert product.title == "Shared id, creator copy"


# ---------------------------------------------------------------------------
# Concurrent refreshes
# ---------------------------------------------------------------------------

_response_delay = contextvars.ContextVar("response_delay", default=0.0)


class DelayingTransport(httpx.AsyncBaseTransport):
    """
    Serves a FakeBackend, delaying responses by the caller's
    ``_response_delay``. Undelayed callers get list rows in reverse order.
    """

    def __init__(self, backend: FakeBackend) -> None:
        self.backend = backend

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        delay = _response_delay.get()
        response = self.backend.handle(request)
        if delay:
            await asyncio.sleep(delay)
            return response
        await asyncio.sleep(0)
        body = response.json() if response.content else None
        if request.method == "GET" and isinstance(body, list):
            return httpx.Response(response.status_code, json=list(reversed(body)))
        return response


class TestConcurrentRefresh:
    """Two overlapping refreshes whose responses arrive out of order."""

    def test_out_of_order_responses_match_sequential_refresh(self):
        backend = _standard_backend()
        client = BackendClient(
            base_url=BASE_URL,
            anon_key="test-anon-key",
            access_token=ACCESS_TOKEN,
            connectivity=ConnectivityState(),
            transport=DelayingTransport(backend),
        )
        repo = ProductRepository(client, memory_cache("products"))
        finished = []

        async def refresh_as(name, delay):
            _response_delay.set(delay)
            result = await repo.refresh()
            finished.append(name)
            return result

        async def scenario():
            await asyncio.gather(refresh_as("first", 0.05), refresh_as("second", 0.0))
            concurrent_items = list(repo.items)
            sequential = await _repo(backend).refresh()
            return concurrent_items, sequential

        concurrent_items, sequential = asyncio.run(scenario())
        assert finished == ["second", "first"]
        assert concurrent_items == sequential
        assert [p.key for p in concurrent_items] == [p.key for p in sequential]


# ---------------------------------------------------------------------------
# Malformed rows
# ---------------------------------------------------------------------------

def _malformed_row(**overrides):
    row = {
        "id": MISSING_ID,
        "title": "Broken",
        "type": "blog",
        "status": "draft",
        "created_at": "2024-03-01T10:00:00+00:00",
        "updated_at": "2024-03-01T10:00:00+00:00",
        "user_id": USER_ID,
        "metadata": "[1,2]",
    }
    row.update(overrides)
    return row


class TestMalformedRows:
    """Rows that do not fit the model never escape as exceptions."""

    @pytest.mark.parametrize("overrides", [
        {},
        {"metadata": None, "updated_at": "not a timestamp"},
        {"metadata": None, "title": ["not", "text"]},
    ])
    def test_malformed_row_is_skipped_in_lists(self, overrides):
        backend = FakeBackend({
            "creator_contents": CREATOR_CONTENT_ROWS + [_malformed_row(**overrides)],
            "projects": PROJECT_ROWS,
        })
        repo = _repo(backend)
        items = asyncio.run(repo.fetch())
        assert repo.error is None
        assert MISSING_ID not in {p.id for p in items}
        assert {EBOOK_ID, BLOG_ID, SHARED_ID, LEGACY_PROJECT_ID} <= {p.id for p in items}

    def test_malformed_record_fails_get_by_id(self):
        backend = FakeBackend({"creator_contents": [_malformed_row()], "projects": []})
        repo = _repo(backend)
        assert asyncio.run(repo.get_by_id(MISSING_ID)) is None
        assert isinstance(repo.last_exception, BackendError)
        assert repo.error

    def test_malformed_created_row_fails_create(self):
        backend = FakeBackend({"creator_contents": [], "projects": []})
        repo = _repo(backend)
        assert asyncio.run(repo.create({"title": "x", "metadata": "[1,2]"})) is None
        assert isinstance(repo.last_exception, BackendError)
        assert repo.items == []
