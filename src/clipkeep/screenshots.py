import logging
import os
import re
import shutil
import subprocess
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from clipkeep.config import (
    MAX_IMAGE_SIZE,
    SCREENSHOT_MAX_AGE,
    SCREENSHOT_READ_RETRIES,
    SCREENSHOT_SETTLE_DELAY,
    Settings,
)
from clipkeep.models import ClipboardItem, ContentType
from clipkeep.retention import RetentionEnforcer
from clipkeep.storage import StorageManager

logger = logging.getLogger(__name__)

SCREENSHOT_APP = "com.apple.screencaptureui"
SCREENSHOT_APP_NAME = "Screenshot"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_NAME_PATTERN = re.compile(
    r"^(Screenshot|Screen Shot) .+\.(png|jpe?g|tiff?|heic|gif|bmp)$", re.IGNORECASE
)


def screenshot_directory() -> Path:
    """Folder the system saves screenshots to, falling back to ~/Desktop."""
    if shutil.which("defaults"):
        result = subprocess.run(
            ["defaults", "read", "com.apple.screencapture", "location"],
            capture_output=True,
            text=True,
        )
        location = result.stdout.strip()
        if result.returncode == 0 and location:
            path = Path(location).expanduser()
            if path.is_dir():
                return path
    return Path.home() / "Desktop"


def is_screenshot_name(name: str) -> bool:
    # The system writes a hidden ".Screenshot ..." file first and renames it.
    return not name.startswith(".") and bool(_NAME_PATTERN.match(name))


def to_png(data: bytes) -> bytes | None:
    """Return PNG bytes for an image file's contents, converting through NSBitmapImageRep."""
    if data.startswith(PNG_SIGNATURE):
        return data
    try:
        from AppKit import NSBitmapImageRep
        from Foundation import NSData

        rep = NSBitmapImageRep.imageRepWithData_(NSData.dataWithBytes_length_(data, len(data)))
        if not rep:
            return None
        png_data = rep.representationUsingType_properties_(4, None)  # 4 = PNG
        return bytes(png_data) if png_data else None
    except Exception:
        logger.debug("Screenshot conversion failed", exc_info=True)
        return None


class ScreenshotEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "ScreenshotWatcher"):
        self._watcher = watcher

    def on_created(self, event):
        if not event.is_directory:
            self._watcher.schedule(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self._watcher.schedule(event.dest_path)


class ScreenshotWatcher:
    """Adds new screenshot files from the screenshot folder to the history.

    Files already in the folder when watching starts are never imported, and
    neither is anything older than ``max_age`` seconds when it is seen.
    """

    def __init__(
        self,
        storage: StorageManager,
        retention: RetentionEnforcer,
        settings: Settings,
        on_change: Callable[[], None] | None = None,
        directory: str | Path | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        observer_factory: Callable[[], object] = Observer,
        max_age: float = SCREENSHOT_MAX_AGE,
        settle_delay: float = SCREENSHOT_SETTLE_DELAY,
        retries: int = SCREENSHOT_READ_RETRIES,
    ):
        self._storage = storage
        self._retention = retention
        self._settings = settings
        self._on_change = on_change
        self._directory = Path(directory) if directory else None
        self._clock = clock
        self._sleep = sleep
        self._observer_factory = observer_factory
        self._max_age = max_age
        self._settle_delay = settle_delay
        self._retries = retries
        self._seen: set[str] = set()
        self._observer = None
        self._lock = threading.Lock()

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        if not self._settings.capture_screenshots:
            logger.info("Screenshot capture disabled in settings")
            return False
        with self._lock:
            if self._observer is not None:
                return True
            directory = self._directory or screenshot_directory()
            if not directory.is_dir():
                logger.warning("Screenshot folder %s does not exist", directory)
                return False
            existing = {str(p) for p in directory.iterdir() if is_screenshot_name(p.name)}
            self._seen.update(existing)

            observer = self._observer_factory()
            observer.schedule(ScreenshotEventHandler(self), str(directory), recursive=False)
            try:
                observer.start()
            except OSError:
                logger.exception("Failed to watch %s for screenshots", directory)
                return False
            self._observer = observer
        logger.info("Watching %s for screenshots (%d existing skipped)", directory, len(existing))
        return True

    def stop(self) -> None:
        with self._lock:
            observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=2.0)
            logger.info("Stopped watching for screenshots")

    def schedule(self, path: str) -> None:
        """Import ``path`` on a worker thread so the observer thread is never held up."""
        if not is_screenshot_name(os.path.basename(path)):
            return
        threading.Thread(
            target=self.handle_path, args=(path,), name="clipkeep-screenshot", daemon=True
        ).start()

    def handle_path(self, path: str) -> ClipboardItem | None:
        with self._lock:
            if path in self._seen:
                return None
            self._seen.add(path)

        if self._settings.incognito or not self._settings.capture_screenshots:
            logger.debug("Ignoring screenshot %s", path)
            return None

        file = Path(path)
        try:
            info = file.stat()
        except OSError:
            logger.debug("Screenshot %s disappeared", path)
            return None
        created = getattr(info, "st_birthtime", info.st_mtime)
        if self._clock() - created >= self._max_age:
            logger.debug("Skipping old screenshot %s", path)
            return None

        logger.info("New screenshot detected")
        self._sleep(self._settle_delay)
        data = self._read(file)
        if data is None:
            logger.error("Failed to load screenshot %s after retries", path)
            return None
        png = to_png(data)
        if png is None:
            logger.error("Failed to convert screenshot %s to PNG", path)
            return None
        if len(png) > MAX_IMAGE_SIZE:
            logger.warning("Screenshot too large (%d bytes), skipping", len(png))
            return None

        item = ClipboardItem(
            content=png,
            content_type=ContentType.IMAGE,
            searchable_text="screenshot",
            timestamp=datetime.fromtimestamp(created),
            source_app=SCREENSHOT_APP,
            source_app_name=SCREENSHOT_APP_NAME,
        )
        try:
            with self._storage.lock:
                self._storage.insert(item)
                self._retention.enforce_history_limit()
        except Exception:
            logger.exception("Failed to save screenshot")
            return None

        logger.info("Saved screenshot %s", item.id)
        if self._on_change:
            self._on_change()
        return item

    def _read(self, file: Path) -> bytes | None:
        for attempt in range(1, self._retries + 1):
            try:
                data = file.read_bytes()
                if data:
                    return data
            except OSError as exc:
                logger.warning("Retry %d reading screenshot: %s", attempt, exc)
            self._sleep(self._settle_delay)
        return None
