import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ContentType(str, Enum):
    TEXT = "text"
    URL = "url"
    IMAGE = "image"
    FILE = "file"


@dataclass
class ClipboardItem:
    content: bytes
    content_type: ContentType
    searchable_text: str
    text_content: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    source_app: str | None = None
    source_app_name: str | None = None
    is_pinned: bool = False
    character_count: int | None = None
    is_sensitive: bool = False
    thumbnail_data: bytes | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class ClipboardSnapshot:
    """Everything the clipboard exposed at one change, before classification."""

    files: list[str] | None = None
    image_bytes: bytes | None = None
    image_type: str | None = None  # "png" or "tiff"
    url: str | None = None
    text: str | None = None
    source_app: str | None = None
    source_app_name: str | None = None
