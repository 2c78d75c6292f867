"""
Key-value backends for the shared store.

The host environment supplies persistence; the orchestrator only needs
whole-value get/set of JSON-compatible data under a handful of keys.

Backends:
    - InMemoryKeyValueStore: process-local dict (tests, one-shot CLI runs)
    - RedisKeyValueStore: JSON strings in Redis, namespaced by a key prefix
"""

import copy
import json
import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any

import redis.asyncio as redis

from inbox_hub.config.settings import get_settings

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Whole-value JSON key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the decoded value for ``key`` or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""

    @abstractmethod
    async def set_many(self, items: dict[str, Any]) -> None:
        """Replace several keys at once; either all writes land or none do."""

    async def connect(self) -> None:
        """Open connections. No-op for local backends."""

    async def close(self) -> None:
        """Release connections. No-op for local backends."""

    async def health_check(self) -> bool:
        return True

    async def __aenter__(self) -> "KeyValueStore":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store.

    Values are deep-copied on the way in and out so callers can never
    mutate stored state without going through set().
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Any | None:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def set_many(self, items: dict[str, Any]) -> None:
        data = dict(self._data)
        for key, value in items.items():
            data[key] = copy.deepcopy(value)
        self._data = data


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store holding each record as one JSON string.

    Usage:
        async with RedisKeyValueStore() as kv:
            await kv.set("statuses", [...])
    """

    def __init__(
        self,
        redis_url: str | None = None,
        key_prefix: str | None = None,
    ):
        settings = get_settings()

        self._redis_url = redis_url or str(settings.redis_url)
        self._key_prefix = key_prefix if key_prefix is not None else settings.store_key_prefix
        self._redis: redis.Redis | None = None

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}" if self._key_prefix else key

    async def connect(self) -> None:
        """Establish the Redis connection."""
        if self._redis is not None:
            return
        self._redis = redis.from_url(
            self._redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Connected to Redis store, prefix=%s", self._key_prefix)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis store connection closed")

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        await self.redis.set(self._key(key), json.dumps(value))

    async def set_many(self, items: dict[str, Any]) -> None:
        """Write all keys in one MULTI/EXEC block."""
        if not items:
            return
        async with self.redis.pipeline(transaction=True) as pipe:
            for key, value in items.items():
                pipe.set(self._key(key), json.dumps(value))
            await pipe.execute()

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception as e:
            logger.warning("Redis store health check failed: %s", e)
            return False


def create_kv_store() -> KeyValueStore:
    """Build the backend selected by ``settings.store_backend``."""
    settings = get_settings()
    if settings.store_backend == "redis":
        return RedisKeyValueStore()
    return InMemoryKeyValueStore()
