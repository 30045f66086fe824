import logging
from pathlib import Path

from watchdog.observers import Observer

from clipkeep.api_server import LocalAPIServer
from clipkeep.auth_gate import AuthenticationGate
from clipkeep.classifier import ContentClassifier
from clipkeep.config import DB_PATH, Settings
from clipkeep.monitor import ClipboardMonitor
from clipkeep.retention import RetentionEnforcer
from clipkeep.screenshots import ScreenshotWatcher
from clipkeep.storage import StorageManager
from clipkeep.tokens import ApiTokenManager, default_token_store
from clipkeep.utils import RepeatingTimer

logger = logging.getLogger(__name__)


class ClipKeepService:
    """Builds every backend component once and owns their lifecycle."""

    def __init__(
        self,
        settings: Settings | None = None,
        pasteboard=None,
        db_path: str | Path | None = None,
        token_store=None,
        authenticator=None,
        on_change=None,
        timer_factory=RepeatingTimer,
        screenshot_dir=None,
        observer_factory=Observer,
    ):
        self.settings = settings or Settings.load()
        self._on_change = on_change
        if pasteboard is None:
            from clipkeep.pasteboard import MacPasteboard

            pasteboard = MacPasteboard()
        self.storage = StorageManager(db_path or DB_PATH)
        self.retention = RetentionEnforcer(self.storage, self.settings)
        self.auth_gate = AuthenticationGate(authenticator)
        self.classifier = ContentClassifier(self.storage, self.settings)
        self.monitor = ClipboardMonitor(
            self.storage,
            self.classifier,
            self.retention,
            self.settings,
            pasteboard,
            on_change=on_change,
            timer_factory=timer_factory,
        )
        self.tokens = ApiTokenManager(token_store or default_token_store())
        self.api_server = LocalAPIServer(
            self.storage,
            self.tokens,
            self.settings,
            self.retention,
            copy_item=self.monitor.copy_to_clipboard,
            on_change=self._items_changed,
        )
        self.screenshots = ScreenshotWatcher(
            self.storage,
            self.retention,
            self.settings,
            on_change=self._items_changed,
            directory=screenshot_dir,
            observer_factory=observer_factory,
        )

        try:
            self.retention.auto_clear()
        except Exception:
            logger.exception("Auto-clear failed")
        self.monitor.refresh_items()

    def _items_changed(self) -> None:
        self.monitor.refresh_items()
        if self._on_change:
            self._on_change()

    def start(self) -> None:
        self.monitor.start()
        self.screenshots.start()
        self.api_server.start()

    def stop(self) -> None:
        self.api_server.stop()
        self.screenshots.stop()
        self.monitor.stop()

    def close(self) -> None:
        self.stop()
        self.storage.close()
