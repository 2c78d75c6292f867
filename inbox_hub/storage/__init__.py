"""Persistence layer - key-value backends and the serialized shared store."""

from inbox_hub.storage.kv import (
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_kv_store,
)
from inbox_hub.storage.shared_store import SharedStore, StoreSnapshot, StoreTransaction

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "SharedStore",
    "StoreSnapshot",
    "StoreTransaction",
    "create_kv_store",
]
