import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from clipkeep.config import DATA_DIR, THUMBNAIL_SIZE, THUMBNAIL_TIMEOUT

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({
    "jpg", "jpeg", "png", "gif", "bmp", "tiff", "tif",
    "heic", "heif", "webp", "ico", "icns", "raw", "cr2",
    "nef", "arw", "dng", "svg", "pdf",
})

def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing Z. Naive values are taken as local time."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def is_image_path(path: str) -> bool:
    return Path(path).suffix.lower().lstrip(".") in IMAGE_EXTENSIONS


def create_thumbnail(image_path: str, size: tuple[int, int] = THUMBNAIL_SIZE) -> bytes | None:
    """Render a PNG thumbnail of an image file using native NSImage.

    Args:
        image_path: Path to the source image
        size: Target size in pixels (width, height)

    Returns:
        PNG bytes, or None if the image could not be rendered
    """
    try:
        from AppKit import NSBitmapImageRep, NSGraphicsContext, NSImage

        original = NSImage.alloc().initWithContentsOfFile_(image_path)
        if not original:
            return None

        resized = NSImage.alloc().initWithSize_(size)
        resized.lockFocus()
        NSGraphicsContext.currentContext().setImageInterpolation_(3)  # High quality
        original.drawInRect_(((0, 0), size))
        resized.unlockFocus()

        tiff_data = resized.TIFFRepresentation()
        if not tiff_data:
            return None

        bitmap_rep = NSBitmapImageRep.imageRepWithData_(tiff_data)
        if not bitmap_rep:
            return None

        png_data = bitmap_rep.representationUsingType_properties_(4, None)  # 4 = PNG
        return bytes(png_data) if png_data else None
    except Exception:
        logger.debug("Thumbnail generation failed for %s", image_path, exc_info=True)
        return None


def thumbnail_for_files(
    paths: list[str],
    generator: Callable[[str], bytes | None] = create_thumbnail,
    timeout: float = THUMBNAIL_TIMEOUT,
) -> bytes | None:
    """Best-effort thumbnail of the first path, only if it is an image file."""
    if not paths or not is_image_path(paths[0]):
        return None
    result: dict[str, bytes | None] = {}

    def _render() -> None:
        try:
            result["value"] = generator(paths[0])
        except Exception:
            logger.debug("Thumbnail generation failed for %s", paths[0], exc_info=True)

    # A render that never returns is abandoned on its own thread.
    worker = threading.Thread(target=_render, name="clipkeep-thumb", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        logger.debug("Thumbnail generation timed out for %s", paths[0])
        return None
    return result.get("value")


class RepeatingTimer:
    """Calls ``callback`` every ``interval`` seconds on a daemon thread until stopped."""

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="clipkeep-timer", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval * 2)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self._callback()
            except Exception:
                logger.exception("Timer callback failed")
