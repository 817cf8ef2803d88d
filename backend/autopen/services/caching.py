from __future__ import annotations

import json
import logging
import time
from functools import lru_cache
from typing import Any, Dict, List, Optional, Protocol, Tuple

import redis

from ..core.config import get_settings

logger = logging.getLogger(__name__)

# Entries outlive their freshness window so offline fallback can still read them
STALE_RETENTION_SECONDS = 24 * 60 * 60


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    def delete(self, key: str) -> None: ...


class RedisStore:
    """
    JSON values in Redis. Every Redis failure is treated as a cache miss.
    """

    def __init__(self, url: str) -> None:
        self.url = url

    def _client(self) -> redis.Redis:
        return redis.from_url(
            self.url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )

    def get(self, key: str) -> Any:
        client = self._client()
        try:
            val = client.get(key)
            return json.loads(val) if val is not None else None
        except (redis.RedisError, ValueError):
            logger.warning("Cache read failed for key '%s'", key, exc_info=True)
            return None
        finally:
            client.close()

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        client = self._client()
        try:
            serialized = json.dumps(value, default=str)
            if ttl is not None:
                client.set(key, serialized, ex=ttl)
            else:
                client.set(key, serialized)
        except (redis.RedisError, TypeError):
            logger.warning("Cache write failed for key '%s'", key, exc_info=True)
        finally:
            client.close()

    def delete(self, key: str) -> None:
        client = self._client()
        try:
            client.delete(key)
        except redis.RedisError:
            logger.warning("Cache delete failed for key '%s'", key, exc_info=True)
        finally:
            client.close()


class MemoryStore:
    """Process-local store; also backs session-scoped handoff keys."""

    def __init__(self) -> None:
        self._data: Dict[str, Tuple[str, float | None]] = {}

    def get(self, key: str) -> Any:
        entry = self._data.get(key)
        if entry is None:
            return None
        serialized, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            self._data.pop(key, None)
            return None
        return json.loads(serialized)

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl is not None else None
        # Serialize so callers never share mutable state with the store
        self._data[key] = (json.dumps(value, default=str), expires_at)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


@lru_cache(maxsize=1)
def get_store() -> KeyValueStore:
    settings = get_settings()
    if settings.REDIS_URL:
        return RedisStore(settings.REDIS_URL)
    return MemoryStore()


class EntityCache:
    """
    TTL cache for one entity type.

    Two kinds of entry:

    - list entries, ``cached_<entity>:<user_id>``
    - record entries, ``<entity>_<id>_<user_id>``

    Each entry stores its write time; anything older than ``ttl`` is a miss
    even if the underlying store has not expired it yet.
    """

    def __init__(
        self,
        entity: str,
        store: KeyValueStore | None = None,
        ttl: int | None = None,
        clock=time.time,
    ) -> None:
        self.entity = entity
        self.store = store if store is not None else get_store()
        self.ttl = ttl if ttl is not None else get_settings().CACHE_TTL_SECONDS
        self._clock = clock

    def list_key(self, user_id: str) -> str:
        return f"cached_{self.entity}:{user_id}"

    def record_key(self, record_id: str, user_id: str) -> str:
        return f"{self.entity}_{record_id}_{user_id}"

    def _read(self, key: str) -> Any:
        try:
            entry = self.store.get(key)
        except Exception:
            logger.warning("Cache read error (non-critical) for '%s'", key, exc_info=True)
            return None
        if not isinstance(entry, dict) or "timestamp" not in entry:
            return None
        if self._clock() - float(entry["timestamp"]) >= self.ttl:
            return None
        return entry.get("data")

    def _write(self, key: str, data: Any) -> None:
        try:
            self.store.set(
                key,
                {"data": data, "timestamp": self._clock()},
                ttl=max(self.ttl, STALE_RETENTION_SECONDS),
            )
        except Exception:
            logger.warning("Cache write error (non-critical) for '%s'", key, exc_info=True)

    def _drop(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception:
            logger.warning("Cache delete error (non-critical) for '%s'", key, exc_info=True)

    async def get_list(self, user_id: str) -> Optional[List[Dict[str, Any]]]:
        data = self._read(self.list_key(user_id))
        return data if isinstance(data, list) else None

    async def set_list(self, user_id: str, items: List[Dict[str, Any]]) -> None:
        self._write(self.list_key(user_id), items)

    async def invalidate_list(self, user_id: str) -> None:
        self._drop(self.list_key(user_id))

    async def get_record(self, record_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        data = self._read(self.record_key(record_id, user_id))
        return data if isinstance(data, dict) else None

    async def set_record(self, record_id: str, user_id: str, record: Dict[str, Any]) -> None:
        self._write(self.record_key(record_id, user_id), record)

    async def invalidate_record(self, record_id: str, user_id: str) -> None:
        self._drop(self.record_key(record_id, user_id))

    async def get_stale_list(self, user_id: str) -> Optional[List[Dict[str, Any]]]:
        """List entry regardless of age, for offline fallback."""
        try:
            entry = self.store.get(self.list_key(user_id))
        except Exception:
            return None
        if isinstance(entry, dict) and isinstance(entry.get("data"), list):
            return entry["data"]
        return None
