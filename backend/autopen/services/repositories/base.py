from __future__ import annotations

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Hashable, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ...core.config import get_settings
from ..backend_client import AuthUser, BackendClient
from ..caching import EntityCache
from ..errors import (
    BackendError,
    DataAccessError,
    InvalidIdentifierError,
    NetworkError,
    NotFoundError,
    describe_error,
)
from ..refresher import BackgroundRefresher

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

OFFLINE_DATA_MESSAGE = "Using locally stored data. Some features may be limited."

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_RE.match(value))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_payload(data: BaseModel | Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", exclude_unset=partial, exclude_none=not partial)
    return dict(data)


def parse_row(build: Callable[[Dict[str, Any]], T], row: Any, entity: str) -> T:
    """Build a model from a backend row; a malformed row becomes a BackendError."""
    if not isinstance(row, dict):
        raise BackendError(f"Malformed {entity} record returned by the backend")
    try:
        return build(row)
    except (ValidationError, KeyError, TypeError) as exc:
        raise BackendError(f"Malformed {entity} record {row.get('id')} returned by the backend") from exc


def _timestamp(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseRepository(Generic[T]):
    """
    In-memory list + TTL cache + CRUD over one backend table.

    Public state mirrors what a page needs to render:

    - ``items``       current list, never None
    - ``is_loading``  a foreground load is running
    - ``error``       human-readable message of the last failure, or None

    Every operation catches ``DataAccessError`` internally, stores the
    message on ``error`` and returns ``None``/``False``. Concurrent loads
    are not coordinated; whichever finishes last sets ``items``.
    """

    entity: str = ""
    table: str = ""
    model: Type[T]
    order_column: str = "updated_at"
    touch_updated_at: bool = True
    # serve the last cached list when the backend is unreachable
    offline_fallback: bool = False
    # write updated rows into the per-record cache (off when an id can live in several tables)
    cache_updated_records: bool = True

    def __init__(
        self,
        client: BackendClient,
        cache: EntityCache | None = None,
        *,
        refresher: BackgroundRefresher | None = None,
    ) -> None:
        self.client = client
        self.cache = cache if cache is not None else EntityCache(self.entity)
        self.items: List[T] = []
        # True once items holds the full list (loaded or served from cache)
        self._has_full_list = False
        self.is_loading: bool = False
        self.error: str | None = None
        self.last_exception: DataAccessError | None = None

        self.background = refresher or BackgroundRefresher(self)
        self.background_debounce = get_settings().BACKGROUND_REFRESH_DEBOUNCE_SECONDS
        self._last_background_refresh: float | None = None
        self._pending: Set[asyncio.Task] = set()
        self._user: AuthUser | None = None

    # ------------------------------------------------------------------
    # hooks
    # ------------------------------------------------------------------

    def normalize(self, row: Dict[str, Any]) -> T:
        return self.model.model_validate(row)

    def parse(self, row: Any, build: Optional[Callable[[Dict[str, Any]], T]] = None) -> T:
        return parse_row(build or self.normalize, row, self.entity)

    def parse_rows(self, rows: List[Any], build: Optional[Callable[[Dict[str, Any]], T]] = None) -> List[T]:
        """Malformed rows are logged and skipped; the rest of the list is kept."""
        items: List[T] = []
        for row in rows:
            try:
                items.append(self.parse(row, build))
            except BackendError as exc:
                logger.warning(
                    "Skipping malformed %s row: %s",
                    self.entity,
                    exc,
                    extra={"entity": self.entity, "table": self.table, "step": "parse"},
                )
        return items

    def identity(self, item: T) -> Hashable:
        return getattr(item, "id")

    async def load_rows(self, user_id: str) -> List[T]:
        rows = await self.client.select(
            self.table,
            filters={"user_id": user_id},
            order=self.order_column,
        )
        return self.parse_rows(rows)

    async def lookup(self, record_id: str, user_id: str) -> Optional[T]:
        row = await self.client.select_one(
            self.table,
            filters={"id": record_id, "user_id": user_id},
        )
        return self.parse(row) if row else None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def current_user(self) -> AuthUser:
        if self._user is None:
            self._user = await self.client.get_user()
        return self._user

    def sort(self, items: List[T]) -> List[T]:
        """Newest first; ties broken by identity so reloads are stable."""
        def _key(item: T):
            ts = getattr(item, self.order_column, None) or getattr(item, "created_at", None)
            return (_timestamp(ts), str(self.identity(item)))

        return sorted(items, key=_key, reverse=True)

    def dump(self, item: T) -> Dict[str, Any]:
        return item.model_dump(mode="json")

    def _fail(self, exc: DataAccessError, step: str, *, quiet: bool = False) -> None:
        extra = {"entity": self.entity, "table": self.table, "step": step}
        if quiet:
            logger.info("%s failed (suppressed): %s", step, exc, extra=extra)
            return
        logger.error("%s failed: %s", step, exc, extra=extra)
        self.error = describe_error(exc)
        self.last_exception = exc

    def _clear_error(self) -> None:
        self.error = None
        self.last_exception = None

    async def _write_list_cache(self, user: AuthUser) -> None:
        if not self._has_full_list:
            # a partial list must not replace the cached one
            await self.cache.invalidate_list(user.id)
            return
        await self.cache.set_list(user.id, [self.dump(i) for i in self.items])

    async def _load_and_store(self, user: AuthUser) -> List[T]:
        items = self.sort(await self.load_rows(user.id))
        self.items = items
        self._has_full_list = True
        await self._write_list_cache(user)
        logger.info(
            "Loaded %s %s",
            len(items),
            self.entity,
            extra={"entity": self.entity, "user_id": user.id, "step": "load"},
        )
        return list(items)

    async def _offline_items(self, user: AuthUser | None) -> Optional[List[T]]:
        if not self.offline_fallback or user is None:
            return None
        stale = await self.cache.get_stale_list(user.id)
        if not stale:
            return None
        return self.parse_rows(stale, self.model.model_validate)

    def _require_uuid(self, record_id: str) -> None:
        if not is_valid_uuid(record_id):
            raise InvalidIdentifierError(f"Invalid {self.entity} ID format: {record_id}")

    # ------------------------------------------------------------------
    # list operations
    # ------------------------------------------------------------------

    async def fetch(self) -> Optional[List[T]]:
        """
        Serve a fresh cached list when there is one (and refresh it in the
        background), otherwise load from the backend.
        """
        self.is_loading = True
        self._clear_error()
        user: AuthUser | None = None
        try:
            user = await self.current_user()
            cached = await self.cache.get_list(user.id)
            if cached:
                logger.info(
                    "Using cached %s list",
                    self.entity,
                    extra={"entity": self.entity, "user_id": user.id, "step": "fetch"},
                )
                self.items = self.parse_rows(cached, self.model.model_validate)
                self._has_full_list = True
                self.schedule_background_refresh()
                return list(self.items)
            return await self._load_and_store(user)
        except NetworkError as exc:
            return self._serve_offline(exc, await self._offline_items(user), "fetch")
        except DataAccessError as exc:
            self._fail(exc, "fetch")
            return None
        finally:
            self.is_loading = False

    async def refresh(self, *, quiet: bool = False) -> Optional[List[T]]:
        """
        Bypass the cache and reload. ``quiet`` is for background callers:
        failures are logged but leave ``error`` and ``is_loading`` alone.
        """
        if not quiet:
            self.is_loading = True
            self._clear_error()
        user: AuthUser | None = None
        try:
            user = await self.current_user()
            return await self._load_and_store(user)
        except NetworkError as exc:
            if quiet:
                self._fail(exc, "refresh", quiet=True)
                return None
            return self._serve_offline(exc, await self._offline_items(user), "refresh")
        except DataAccessError as exc:
            self._fail(exc, "refresh", quiet=quiet)
            return None
        finally:
            if not quiet:
                self.is_loading = False

    def _serve_offline(
        self,
        exc: NetworkError,
        offline: Optional[List[T]],
        step: str,
    ) -> Optional[List[T]]:
        if offline is None:
            self._fail(exc, step)
            return None
        logger.warning(
            "Backend unreachable; serving cached %s",
            self.entity,
            extra={"entity": self.entity, "step": step},
        )
        self.items = offline
        self._has_full_list = True
        self.error = OFFLINE_DATA_MESSAGE
        self.last_exception = exc
        return list(offline)

    def schedule_background_refresh(self) -> Optional[asyncio.Task]:
        now = time.monotonic()
        if (
            self._last_background_refresh is not None
            and now - self._last_background_refresh < self.background_debounce
        ):
            logger.debug(
                "Skipping background refresh - too soon since last refresh",
                extra={"entity": self.entity},
            )
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None

        self._last_background_refresh = now
        task = loop.create_task(self.background.refresh_once())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain_background(self) -> None:
        """Wait for any in-flight background refresh."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # record operations
    # ------------------------------------------------------------------

    def find_local(self, record_id: str) -> Optional[T]:
        for item in self.items:
            if getattr(item, "id") == record_id:
                return item
        return None

    async def get_by_id(self, record_id: str) -> Optional[T]:
        """
        Memory, then the per-record cache, then the backend. Malformed ids
        return None without touching the network.
        """
        if not is_valid_uuid(record_id):
            logger.warning(
                "Invalid %s ID format: %s",
                self.entity,
                record_id,
                extra={"entity": self.entity, "step": "get_by_id"},
            )
            return None

        self._clear_error()
        local = self.find_local(record_id)
        if local is not None:
            return local

        try:
            user = await self.current_user()
            cached = await self.cache.get_record(record_id, user.id)
            if cached:
                return self.parse(cached, self.model.model_validate)

            found = await self.lookup(record_id, user.id)
            if found is None:
                logger.info(
                    "%s %s not found",
                    self.entity,
                    record_id,
                    extra={"entity": self.entity, "step": "get_by_id"},
                )
                return None
            await self.cache.set_record(record_id, user.id, self.dump(found))
            return found
        except DataAccessError as exc:
            self._fail(exc, "get_by_id")
            return None

    def creation_payload(self, data: BaseModel | Dict[str, Any], user: AuthUser) -> Dict[str, Any]:
        payload = _as_payload(data, partial=False)
        payload["user_id"] = user.id
        if self.touch_updated_at:
            now = utc_now_iso()
            payload.setdefault("created_at", now)
            payload.setdefault("updated_at", now)
        return payload

    def update_payload(self, data: BaseModel | Dict[str, Any]) -> Dict[str, Any]:
        payload = _as_payload(data, partial=True)
        # ownership and identity are never client-editable
        for column in ("id", "user_id", "created_at"):
            payload.pop(column, None)
        if self.touch_updated_at:
            payload["updated_at"] = utc_now_iso()
        return payload

    async def create(self, data: BaseModel | Dict[str, Any]) -> Optional[T]:
        self._clear_error()
        try:
            user = await self.current_user()
            rows = await self.client.insert(self.table, self.creation_payload(data, user))
            if not rows:
                raise BackendError(f"Backend returned no row for the new {self.entity} record")
            created = self.parse(rows[0])
            self.items = [created, *self.items]
            await self._write_list_cache(user)
            logger.info(
                "Created %s %s",
                self.entity,
                created.id,
                extra={"entity": self.entity, "user_id": user.id, "step": "create"},
            )
            return created
        except DataAccessError as exc:
            self._fail(exc, "create")
            return None

    async def _update_in(
        self,
        table: str,
        record_id: str,
        data: BaseModel | Dict[str, Any],
        normalize: Optional[Callable[[Dict[str, Any]], T]] = None,
    ) -> Optional[T]:
        normalize = normalize or self.normalize
        self._clear_error()
        try:
            self._require_uuid(record_id)
            user = await self.current_user()
            rows = await self.client.update(
                table,
                self.update_payload(data),
                filters={"id": record_id, "user_id": user.id},
            )
            if not rows:
                raise NotFoundError(f"{self.entity} {record_id} not found")
            updated = self.parse(rows[0], normalize)
            key = self.identity(updated)
            self.items = [updated if self.identity(i) == key else i for i in self.items]
            await self._write_list_cache(user)
            if self.cache_updated_records:
                await self.cache.set_record(record_id, user.id, self.dump(updated))
            else:
                await self.cache.invalidate_record(record_id, user.id)
            return updated
        except DataAccessError as exc:
            self._fail(exc, "update")
            return None

    async def update(self, record_id: str, data: BaseModel | Dict[str, Any]) -> Optional[T]:
        return await self._update_in(self.table, record_id, data)

    async def _delete_in(self, table: str, record_id: str, key: Hashable) -> bool:
        self._clear_error()
        try:
            self._require_uuid(record_id)
            user = await self.current_user()
            removed = await self.client.delete(table, filters={"id": record_id, "user_id": user.id})
            if not removed:
                raise NotFoundError(f"{self.entity} {record_id} not found")
            self.items = [i for i in self.items if self.identity(i) != key]
            await self._write_list_cache(user)
            await self.cache.invalidate_record(record_id, user.id)
            logger.info(
                "Deleted %s %s",
                self.entity,
                record_id,
                extra={"entity": self.entity, "user_id": user.id, "step": "delete"},
            )
            return True
        except DataAccessError as exc:
            self._fail(exc, "delete")
            return False

    async def delete(self, record_id: str) -> bool:
        return await self._delete_in(self.table, record_id, record_id)
