"""
Shared store: the single source of truth for configs, statuses and messages.

Three named records are persisted as whole lists:
    - ``serviceConfigs``: list[ProviderConfig]
    - ``statuses``: list[ProviderStatus]
    - ``messages``: list[UnifiedMessage], at most N per provider, newest first

Every read-modify-write goes through ``mutate()``, which holds a single
asyncio.Lock for the whole transaction. Two poll cycles finishing at the
same time therefore cannot both read the old merged list and overwrite
each other's slice.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from inbox_hub.providers.schemas import (
    ProviderConfig,
    ProviderId,
    ProviderStatus,
    UnifiedMessage,
)
from inbox_hub.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

CONFIGS_KEY = "serviceConfigs"
STATUSES_KEY = "statuses"
MESSAGES_KEY = "messages"

DEFAULT_MAX_MESSAGES_PER_PROVIDER = 20

ModelT = TypeVar("ModelT", bound=BaseModel)

StoreListener = Callable[["StoreSnapshot"], None]


def normalize_messages(
    messages: list[UnifiedMessage],
    max_per_provider: int = DEFAULT_MAX_MESSAGES_PER_PROVIDER,
) -> list[UnifiedMessage]:
    """
    Enforce the store's message invariants.

    Keeps the ``max_per_provider`` newest messages of each provider and
    returns the merged list sorted by timestamp, newest first. The sort is
    stable, so equal timestamps keep their incoming order.

    Args:
        messages: Merged messages in any order
        max_per_provider: Cap per provider id

    Returns:
        New list satisfying the cap and sort invariants
    """
    ordered = sorted(messages, key=lambda m: m.timestamp, reverse=True)
    kept: list[UnifiedMessage] = []
    per_provider: dict[ProviderId, int] = {}
    for message in ordered:
        count = per_provider.get(message.provider_id, 0)
        if count >= max_per_provider:
            continue
        per_provider[message.provider_id] = count + 1
        kept.append(message)
    return kept


@dataclass
class StoreSnapshot:
    """Read-only view of the store at one version."""

    configs: list[ProviderConfig]
    statuses: list[ProviderStatus]
    messages: list[UnifiedMessage]
    version: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "version": self.version,
            "configs": [c.model_dump(mode="json") for c in self.configs],
            "statuses": [s.model_dump(mode="json") for s in self.statuses],
            "messages": [m.model_dump(mode="json") for m in self.messages],
        }


@dataclass
class StoreTransaction:
    """
    Working copy handed out by SharedStore.mutate().

    Replace or edit the lists freely; on commit only records that differ
    from what was loaded are written back.
    """

    configs: list[ProviderConfig]
    statuses: list[ProviderStatus]
    messages: list[UnifiedMessage]
    _loaded: dict[str, list[Any]] = field(default_factory=dict, repr=False)

    def status_for(self, provider_id: ProviderId) -> ProviderStatus | None:
        for status in self.statuses:
            if status.provider_id == provider_id:
                return status
        return None

    def set_status(self, status: ProviderStatus) -> bool:
        """Replace the status row for ``status.provider_id``; False if absent."""
        for idx, existing in enumerate(self.statuses):
            if existing.provider_id == status.provider_id:
                self.statuses[idx] = status
                return True
        return False

    def config_for(self, provider_id: ProviderId) -> ProviderConfig | None:
        for config in self.configs:
            if config.provider_id == provider_id:
                return config
        return None

    def messages_for(self, provider_id: ProviderId) -> list[UnifiedMessage]:
        return [m for m in self.messages if m.provider_id == provider_id]


class SharedStore:
    """
    Typed, serialized access to the three persisted records.

    Usage:
        store = SharedStore(InMemoryKeyValueStore())

        async with store.mutate() as txn:
            txn.statuses = [...]
        # committed, listeners notified

        snapshot = await store.snapshot()
    """

    def __init__(
        self,
        kv: KeyValueStore,
        max_messages_per_provider: int = DEFAULT_MAX_MESSAGES_PER_PROVIDER,
    ):
        self._kv = kv
        self._max_messages_per_provider = max_messages_per_provider
        self._lock = asyncio.Lock()
        self._version = 0
        self._listeners: list[StoreListener] = []

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    @property
    def version(self) -> int:
        """Incremented on every committed mutation that changed something."""
        return self._version

    @property
    def max_messages_per_provider(self) -> int:
        return self._max_messages_per_provider

    async def _load(self, key: str, model: type[ModelT]) -> list[ModelT]:
        raw = await self._kv.get(key) or []
        items: list[ModelT] = []
        for entry in raw:
            try:
                items.append(model.model_validate(entry))
            except ValidationError as e:
                logger.warning("Dropping invalid %s record: %s", key, e)
        return items

    async def get_configs(self) -> list[ProviderConfig]:
        return await self._load(CONFIGS_KEY, ProviderConfig)

    async def get_statuses(self) -> list[ProviderStatus]:
        return await self._load(STATUSES_KEY, ProviderStatus)

    async def get_messages(self) -> list[UnifiedMessage]:
        return await self._load(MESSAGES_KEY, UnifiedMessage)

    async def snapshot(self) -> StoreSnapshot:
        """Consistent read of all three records (waits for in-flight mutations)."""
        async with self._lock:
            return await self._snapshot_unlocked()

    async def _snapshot_unlocked(self) -> StoreSnapshot:
        return StoreSnapshot(
            configs=await self.get_configs(),
            statuses=await self.get_statuses(),
            messages=await self.get_messages(),
            version=self._version,
        )

    @asynccontextmanager
    async def mutate(self) -> AsyncIterator[StoreTransaction]:
        """
        Serialized read-modify-write transaction.

        The lock is held from load to commit. If the body raises, nothing
        is written.
        """
        async with self._lock:
            configs = await self.get_configs()
            statuses = await self.get_statuses()
            messages = await self.get_messages()
            txn = StoreTransaction(
                configs=list(configs),
                statuses=list(statuses),
                messages=list(messages),
                _loaded={
                    CONFIGS_KEY: configs,
                    STATUSES_KEY: statuses,
                    MESSAGES_KEY: messages,
                },
            )

            yield txn

            snapshot = await self._commit(txn)

        if snapshot is not None:
            self._notify(snapshot)

    async def _commit(self, txn: StoreTransaction) -> StoreSnapshot | None:
        txn.messages = normalize_messages(txn.messages, self._max_messages_per_provider)

        changed: dict[str, Any] = {}
        for key, items in (
            (CONFIGS_KEY, txn.configs),
            (STATUSES_KEY, txn.statuses),
            (MESSAGES_KEY, txn.messages),
        ):
            if items != txn._loaded[key]:
                changed[key] = [item.model_dump(mode="json") for item in items]

        if not changed:
            return None

        await self._kv.set_many(changed)

        self._version += 1
        return StoreSnapshot(
            configs=list(txn.configs),
            statuses=list(txn.statuses),
            messages=list(txn.messages),
            version=self._version,
        )

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """
        Register a change listener, called after each committed mutation.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: StoreSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Store listener failed: %s", e, exc_info=True)
