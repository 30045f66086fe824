from datetime import datetime, timedelta

import pytest

from clipkeep.config import Settings
from clipkeep.models import ClipboardItem, ContentType
from clipkeep.storage import StorageManager


class FakeTokenStore:
    """In-memory stand-in for the keychain."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.values = dict(initial or {})

    def load(self, key):
        return self.values.get(key)

    def save(self, key, value):
        self.values[key] = value

    def delete(self, key):
        self.values.pop(key, None)


class FakeClock:
    """Manually advanced clock returning datetimes."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def storage():
    mgr = StorageManager(db_path=":memory:")
    yield mgr
    mgr.close()


@pytest.fixture
def settings():
    return Settings(excluded_apps=["com.agilebits.onepassword7"])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_store():
    return FakeTokenStore()


@pytest.fixture
def make_item():
    """Factory fixture to create ClipboardItem instances for testing."""

    def _make_item(
        text: str = "hello world",
        content_type: ContentType = ContentType.TEXT,
        timestamp: datetime | None = None,
        pinned: bool = False,
        content: bytes | None = None,
        source_app_name: str | None = None,
        sensitive: bool = False,
    ) -> ClipboardItem:
        if content_type == ContentType.IMAGE:
            return ClipboardItem(
                content=content if content is not None else b"\x89PNG\r\n\x1a\nfake",
                content_type=content_type,
                searchable_text="image",
                timestamp=timestamp or datetime.now(),
                is_pinned=pinned,
                source_app_name=source_app_name,
            )
        return ClipboardItem(
            content=content if content is not None else text.encode("utf-8"),
            text_content=text,
            content_type=content_type,
            searchable_text=text.lower(),
            timestamp=timestamp or datetime.now(),
            is_pinned=pinned,
            character_count=len(text),
            source_app_name=source_app_name,
            is_sensitive=sensitive,
        )

    return _make_item
