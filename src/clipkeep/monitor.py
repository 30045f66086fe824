import logging
from collections.abc import Callable
from enum import Enum

from clipkeep.classifier import ContentClassifier
from clipkeep.config import POLL_INTERVAL, RECENT_ITEMS_LIMIT, Settings
from clipkeep.models import ClipboardItem
from clipkeep.retention import RetentionEnforcer
from clipkeep.storage import StorageManager
from clipkeep.utils import RepeatingTimer

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


class ClipboardMonitor:
    """Polls the clipboard change counter and captures one item per change.

    Only the clipboard state at the tick that notices a change is read;
    anything copied and overwritten between two ticks is never seen.
    """

    def __init__(
        self,
        storage: StorageManager,
        classifier: ContentClassifier,
        retention: RetentionEnforcer,
        settings: Settings,
        pasteboard,
        on_change: Callable[[], None] | None = None,
        interval: float = POLL_INTERVAL,
        timer_factory: Callable = RepeatingTimer,
    ):
        self._storage = storage
        self._classifier = classifier
        self._retention = retention
        self._settings = settings
        self._pasteboard = pasteboard
        self._on_change = on_change
        self._interval = interval
        self._timer_factory = timer_factory
        self._timer = None
        self._last_change_count = 0
        self._writing = False
        self.state = MonitorState.IDLE
        self.items: list[ClipboardItem] = []
        self.item_count = 0

    @property
    def is_monitoring(self) -> bool:
        return self.state == MonitorState.ACTIVE

    def start(self) -> None:
        if self.state == MonitorState.ACTIVE:
            return
        self._last_change_count = self._pasteboard.change_count()
        self._timer = self._timer_factory(self._interval, self.check_clipboard)
        self._timer.start()
        self.state = MonitorState.ACTIVE
        logger.info("Started monitoring (change count: %d)", self._last_change_count)

    def stop(self) -> None:
        if self.state == MonitorState.IDLE:
            return
        timer, self._timer = self._timer, None
        self.state = MonitorState.IDLE
        if timer is not None:
            timer.stop()
        logger.info("Stopped monitoring")

    def check_clipboard(self) -> bool:
        """One poll tick. Returns True if a new item was stored."""
        with self._storage.lock:
            if self._writing:
                return False
            try:
                current_count = self._pasteboard.change_count()
            except Exception:
                logger.exception("Error reading clipboard change count")
                return False
            if current_count == self._last_change_count:
                return False
            self._last_change_count = current_count
            return self.capture()

    def capture(self) -> bool:
        try:
            with self._storage.lock:
                snapshot = self._pasteboard.read_snapshot()
                if snapshot is None:
                    return False

                if self._settings.is_app_excluded(snapshot.source_app):
                    logger.debug("Ignoring copy from excluded app %s", snapshot.source_app)
                    return False
                if self._settings.incognito:
                    return False

                item = self._classifier.classify(snapshot)
                if item is None:
                    return False

                self._storage.insert(item)
                self._retention.enforce_history_limit()
                self.refresh_items()
        except Exception:
            logger.exception("Error capturing clipboard")
            return False

        logger.debug("Captured %s item %s", item.content_type.value, item.id)
        if self._on_change:
            self._on_change()
        return True

    def sync_change_count(self) -> None:
        self._last_change_count = self._pasteboard.change_count()

    def refresh_items(self) -> None:
        try:
            self.items = self._storage.fetch_where(limit=RECENT_ITEMS_LIMIT, with_blobs=False)
            self.item_count = self._storage.count()
        except Exception:
            logger.exception("Failed to refresh items")

    def copy_to_clipboard(self, item: ClipboardItem) -> bool:
        """Write an item back to the clipboard without capturing it again.

        Holds the same lock as the poll tick, so the write and the counter
        resync are never split by a capture.
        """
        with self._storage.lock:
            self._writing = True
            try:
                return self._pasteboard.write(item)
            finally:
                self._writing = False
                self.sync_change_count()

    def toggle_pin(self, item_id: str) -> bool | None:
        pinned = self._storage.toggle_pin(item_id)
        self.refresh_items()
        return pinned

    def delete_item(self, item_id: str) -> bool:
        deleted = self._storage.delete(item_id)
        self.refresh_items()
        return deleted

    def clear_history(self, keep_pinned: bool = True) -> int:
        deleted = self._storage.clear(keep_pinned=keep_pinned)
        self.refresh_items()
        return deleted
