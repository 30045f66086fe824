import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from clipkeep.config import Settings
from clipkeep.storage import StorageManager

logger = logging.getLogger(__name__)


class RetentionEnforcer:
    """Keeps history bounded by count and age. Pinned items are never touched."""

    def __init__(
        self,
        storage: StorageManager,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._storage = storage
        self._settings = settings
        self._clock = clock

    def enforce_history_limit(self) -> int:
        """Evict the oldest non-pinned items beyond the configured limit."""
        limit = self._settings.history_limit
        if self._storage.count(pinned=False) <= limit:
            return 0
        deleted = self._storage.delete_unpinned_beyond(limit)
        if deleted:
            logger.info("Evicted %d item(s) over history limit of %d", deleted, limit)
        return deleted

    def auto_clear(self) -> int:
        """Delete non-pinned items older than ``auto_clear_days``; 0 disables it."""
        days = self._settings.auto_clear_days
        if not days or days <= 0:
            return 0
        cutoff = self._clock() - timedelta(days=days)
        deleted = self._storage.delete_unpinned_older_than(cutoff)
        if deleted:
            logger.info("Auto-cleared %d item(s) older than %d day(s)", deleted, days)
        return deleted
