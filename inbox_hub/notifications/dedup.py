"""Bounded set of already-notified message ids."""

import logging

from inbox_hub.config.settings import get_settings

logger = logging.getLogger(__name__)


class NotificationDedupCache:
    """
    Remembers which message ids have been notified in this process.

    Insertion-ordered and bounded: once more than ``max_entries`` ids are
    held, the oldest ``evict_count`` are dropped. A dropped id can be
    notified again. Nothing is persisted, so a restart resets the cache.

    Usage:
        cache = NotificationDedupCache()
        if cache.should_notify(message.id):
            await sink.send(notification)
    """

    def __init__(
        self,
        max_entries: int | None = None,
        evict_count: int | None = None,
    ):
        settings = get_settings()
        self.max_entries = max_entries or settings.notification_dedup_max_entries
        self.evict_count = min(
            evict_count or settings.notification_dedup_evict_count,
            self.max_entries,
        )
        # dict preserves insertion order
        self._seen: dict[str, None] = {}

    def should_notify(self, message_id: str) -> bool:
        """
        Check and mark ``message_id``.

        Returns:
            True the first time an id is seen (until evicted), False after
        """
        if message_id in self._seen:
            return False

        self._seen[message_id] = None
        if len(self._seen) > self.max_entries:
            self._evict()
        return True

    def _evict(self) -> None:
        oldest = list(self._seen)[: self.evict_count]
        for message_id in oldest:
            del self._seen[message_id]
        logger.debug("Evicted %d notified ids, %d remain", len(oldest), len(self._seen))

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def clear(self) -> None:
        self._seen.clear()
