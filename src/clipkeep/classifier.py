import logging
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from urllib.parse import urlparse

from clipkeep.config import DUPLICATE_WINDOW, MAX_IMAGE_SIZE, MAX_TEXT_SIZE, Settings
from clipkeep.models import ClipboardItem, ClipboardSnapshot, ContentType
from clipkeep.sensitive import is_sensitive
from clipkeep.storage import StorageManager
from clipkeep.utils import thumbnail_for_files

logger = logging.getLogger(__name__)

URL_SCHEMES = frozenset({"http", "https", "mailto", "tel", "file"})
EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def parse_url(text: str) -> str | None:
    """Return the URL scheme if ``text`` is a single URL with an allowed scheme."""
    candidate = text.strip()
    if not candidate or any(ch.isspace() for ch in candidate):
        return None
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    scheme = parsed.scheme.lower()
    if scheme not in URL_SCHEMES:
        return None
    if scheme in ("http", "https") and not parsed.netloc:
        return None
    if scheme in ("mailto", "tel") and not parsed.path:
        return None
    return scheme


def detect_text_type(text: str) -> ContentType:
    if parse_url(text) is not None or EMAIL_RE.match(text.strip()):
        return ContentType.URL
    return ContentType.TEXT


def make_text_item(
    text: str,
    content_type: ContentType = ContentType.TEXT,
    source_app: str | None = None,
    source_app_name: str | None = None,
    is_pinned: bool = False,
    sensitive: bool = False,
    timestamp: datetime | None = None,
) -> ClipboardItem:
    return ClipboardItem(
        content=text.encode("utf-8"),
        text_content=text,
        content_type=content_type,
        timestamp=timestamp or datetime.now(),
        source_app=source_app,
        source_app_name=source_app_name,
        is_pinned=is_pinned,
        character_count=len(text),
        searchable_text=text.lower(),
        is_sensitive=sensitive,
    )


class ContentClassifier:
    """Turns one clipboard snapshot into at most one history item.

    Representations are tried richest first: files, image bytes, a
    non-file URL, then plain text. Anything that fails is logged and
    dropped; ``classify`` never raises.
    """

    def __init__(
        self,
        storage: StorageManager,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
        thumbnailer: Callable[[list[str]], bytes | None] = thumbnail_for_files,
        duplicate_window: float = DUPLICATE_WINDOW,
    ):
        self._storage = storage
        self._settings = settings
        self._clock = clock
        self._thumbnailer = thumbnailer
        self._duplicate_window = duplicate_window

    def classify(self, snapshot: ClipboardSnapshot) -> ClipboardItem | None:
        try:
            if snapshot.files:
                return self._from_files(snapshot)
            if snapshot.image_bytes:
                return self._from_image(snapshot)
            if snapshot.url and parse_url(snapshot.url) not in (None, "file"):
                return self._from_url(snapshot)
            if snapshot.text:
                return self._from_text(snapshot)
        except Exception:
            logger.exception("Failed to classify clipboard contents")
        return None

    def _from_files(self, snapshot: ClipboardSnapshot) -> ClipboardItem:
        paths = list(snapshot.files)
        names = [Path(p).name for p in paths]
        display = ", ".join(names)

        thumbnail = None
        try:
            thumbnail = self._thumbnailer(paths)
        except Exception:
            logger.debug("Thumbnail unavailable for %s", paths[0], exc_info=True)

        return ClipboardItem(
            content="\n".join(paths).encode("utf-8"),
            text_content=display,
            content_type=ContentType.FILE,
            timestamp=self._clock(),
            source_app=snapshot.source_app,
            source_app_name=snapshot.source_app_name,
            character_count=len(display),
            searchable_text="file " + " ".join(names).lower(),
            thumbnail_data=thumbnail,
        )

    def _from_image(self, snapshot: ClipboardSnapshot) -> ClipboardItem | None:
        img_bytes = bytes(snapshot.image_bytes)
        if len(img_bytes) > MAX_IMAGE_SIZE:
            logger.warning("Image too large (%d bytes), skipping", len(img_bytes))
            return None
        return ClipboardItem(
            content=img_bytes,
            content_type=ContentType.IMAGE,
            timestamp=self._clock(),
            source_app=snapshot.source_app,
            source_app_name=snapshot.source_app_name,
            searchable_text="image",
        )

    def _from_url(self, snapshot: ClipboardSnapshot) -> ClipboardItem:
        url = snapshot.url.strip()
        return make_text_item(
            url,
            ContentType.URL,
            source_app=snapshot.source_app,
            source_app_name=snapshot.source_app_name,
            timestamp=self._clock(),
        )

    def _from_text(self, snapshot: ClipboardSnapshot) -> ClipboardItem | None:
        text = snapshot.text
        if len(text.encode("utf-8")) > MAX_TEXT_SIZE:
            logger.warning("Text too large, skipping")
            return None

        now = self._clock()
        if self._is_duplicate(text, now):
            logger.debug("Ignoring repeated copy of the most recent text item")
            return None

        sensitive = self._settings.sensitive_protection and is_sensitive(text)
        return make_text_item(
            text,
            detect_text_type(text),
            source_app=snapshot.source_app,
            source_app_name=snapshot.source_app_name,
            sensitive=sensitive,
            timestamp=now,
        )

    def _is_duplicate(self, text: str, now: datetime) -> bool:
        latest = self._storage.latest_text_item()
        if latest is None or latest.text_content != text:
            return False
        return (now - latest.timestamp).total_seconds() < self._duplicate_window
