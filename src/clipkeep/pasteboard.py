"""macOS clipboard and keystroke primitives.

AppKit and Quartz are imported when a primitive is first constructed or
used, so the rest of the package stays importable off macOS.
"""

import logging
import time

from clipkeep.models import ClipboardItem, ClipboardSnapshot, ContentType

logger = logging.getLogger(__name__)

V_KEY_CODE = 0x09


class MacPasteboard:
    """The general NSPasteboard plus frontmost-app attribution."""

    def __init__(self):
        from AppKit import NSPasteboard, NSWorkspace

        self._pasteboard = NSPasteboard.generalPasteboard()
        self._workspace = NSWorkspace.sharedWorkspace()

    def change_count(self) -> int:
        return int(self._pasteboard.changeCount())

    def read_snapshot(self) -> ClipboardSnapshot | None:
        from AppKit import (
            NSFilenamesPboardType,
            NSPasteboardTypePNG,
            NSPasteboardTypeString,
            NSPasteboardTypeTIFF,
            NSPasteboardTypeURL,
        )

        types = self._pasteboard.types()
        if types is None:
            return None

        snapshot = ClipboardSnapshot()
        app = self._workspace.frontmostApplication()
        if app is not None:
            snapshot.source_app = app.bundleIdentifier()
            snapshot.source_app_name = app.localizedName()

        if NSFilenamesPboardType in types:
            filenames = self._pasteboard.propertyListForType_(NSFilenamesPboardType)
            if filenames:
                snapshot.files = [str(f) for f in filenames]

        for img_type, name in ((NSPasteboardTypePNG, "png"), (NSPasteboardTypeTIFF, "tiff")):
            if img_type in types:
                data = self._pasteboard.dataForType_(img_type)
                if data is not None:
                    snapshot.image_bytes = bytes(data)
                    snapshot.image_type = name
                    break

        if NSPasteboardTypeURL in types:
            snapshot.url = self._pasteboard.stringForType_(NSPasteboardTypeURL)

        if NSPasteboardTypeString in types:
            snapshot.text = self._pasteboard.stringForType_(NSPasteboardTypeString)

        return snapshot

    def write(self, item: ClipboardItem) -> bool:
        from AppKit import NSPasteboardTypePNG, NSPasteboardTypeString
        from Foundation import NSData

        if item.content_type == ContentType.IMAGE:
            img_data = NSData.dataWithBytes_length_(item.content, len(item.content))
            if not img_data:
                return False
            self._pasteboard.clearContents()
            return bool(self._pasteboard.setData_forType_(img_data, NSPasteboardTypePNG))

        if item.content_type == ContentType.FILE:
            text = item.content.decode("utf-8")
        else:
            text = item.text_content if item.text_content is not None else item.content.decode("utf-8")
        self._pasteboard.clearContents()
        return bool(self._pasteboard.setString_forType_(text, NSPasteboardTypeString))


def has_accessibility_permission() -> bool:
    try:
        from ApplicationServices import AXIsProcessTrusted

        return bool(AXIsProcessTrusted())
    except Exception:
        logger.exception("Could not check accessibility permission")
        return False


def simulate_paste_keystroke() -> bool:
    """Post Cmd+V to the focused app. False when accessibility access is missing."""
    if not has_accessibility_permission():
        logger.warning("Cannot simulate paste: no accessibility permission")
        return False

    try:
        import Quartz

        # Let focus return to the previous app.
        time.sleep(0.05)
        source = Quartz.CGEventSourceCreate(Quartz.kCGEventSourceStateHIDSystemState)
        key_down = Quartz.CGEventCreateKeyboardEvent(source, V_KEY_CODE, True)
        key_up = Quartz.CGEventCreateKeyboardEvent(source, V_KEY_CODE, False)
        if key_down is None or key_up is None:
            logger.error("Failed to create keyboard events")
            return False
        Quartz.CGEventSetFlags(key_down, Quartz.kCGEventFlagMaskCommand)
        Quartz.CGEventSetFlags(key_up, Quartz.kCGEventFlagMaskCommand)
        Quartz.CGEventPost(Quartz.kCGHIDEventTap, key_down)
        Quartz.CGEventPost(Quartz.kCGHIDEventTap, key_up)
    except Exception:
        logger.exception("Paste simulation failed")
        return False

    logger.debug("Simulated Cmd+V paste keystroke")
    return True
