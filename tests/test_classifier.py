from unittest.mock import MagicMock, patch

import pytest

from clipkeep.classifier import ContentClassifier, detect_text_type, make_text_item, parse_url
from clipkeep.config import Settings
from clipkeep.models import ClipboardSnapshot, ContentType


@pytest.fixture
def classifier(storage, settings, clock):
    return ContentClassifier(storage, settings, clock=clock, thumbnailer=lambda paths: None)


class TestParseUrl:
    @pytest.mark.parametrize(
        "text,scheme",
        [
            ("https://example.com", "https"),
            ("http://example.com/path?q=1", "http"),
            ("mailto:someone@example.com", "mailto"),
            ("tel:+15551234567", "tel"),
            ("file:///tmp/report.pdf", "file"),
            ("  https://example.com  ", "https"),
        ],
    )
    def test_accepted(self, text, scheme):
        assert parse_url(text) == scheme

    @pytest.mark.parametrize(
        "text",
        ["", "hello world", "ftp://example.com", "https://", "see https://example.com", "javascript:alert(1)"],
    )
    def test_rejected(self, text):
        assert parse_url(text) is None


class TestDetectTextType:
    def test_url(self):
        assert detect_text_type("https://example.com") == ContentType.URL

    def test_email_is_url(self):
        assert detect_text_type("user@example.com") == ContentType.URL

    def test_plain(self):
        assert detect_text_type("just some words") == ContentType.TEXT


class TestMakeTextItem:
    def test_fields(self):
        item = make_text_item("Hello World", source_app_name="Notes")
        assert item.content == b"Hello World"
        assert item.searchable_text == "hello world"
        assert item.character_count == 11
        assert item.content_type == ContentType.TEXT
        assert item.is_pinned is False


class TestPrecedence:
    def test_files_beat_text(self, classifier):
        snapshot = ClipboardSnapshot(files=["/Users/me/a.txt", "/Users/me/b.pdf"], text="a.txt")
        item = classifier.classify(snapshot)
        assert item.content_type == ContentType.FILE
        assert item.content == b"/Users/me/a.txt\n/Users/me/b.pdf"
        assert item.text_content == "a.txt, b.pdf"
        assert item.searchable_text == "file a.txt b.pdf"

    def test_image_beats_url_and_text(self, classifier):
        snapshot = ClipboardSnapshot(image_bytes=b"\x89PNGdata", image_type="png", url="https://x.io", text="x")
        item = classifier.classify(snapshot)
        assert item.content_type == ContentType.IMAGE
        assert item.content == b"\x89PNGdata"
        assert item.text_content is None
        assert item.searchable_text == "image"

    def test_url_representation(self, classifier):
        item = classifier.classify(ClipboardSnapshot(url=" https://example.com/page ", text="Example"))
        assert item.content_type == ContentType.URL
        assert item.text_content == "https://example.com/page"

    def test_file_url_falls_through_to_text(self, classifier):
        item = classifier.classify(ClipboardSnapshot(url="file:///tmp/a.txt", text="hello"))
        assert item.content_type == ContentType.TEXT
        assert item.text_content == "hello"

    def test_text_that_looks_like_url(self, classifier):
        item = classifier.classify(ClipboardSnapshot(text="https://example.com"))
        assert item.content_type == ContentType.URL

    def test_empty_snapshot(self, classifier):
        assert classifier.classify(ClipboardSnapshot()) is None

    def test_source_app_carried(self, classifier):
        snapshot = ClipboardSnapshot(text="hello", source_app="com.apple.Terminal", source_app_name="Terminal")
        item = classifier.classify(snapshot)
        assert item.source_app == "com.apple.Terminal"
        assert item.source_app_name == "Terminal"


class TestSizeLimits:
    def test_oversized_image_dropped(self, classifier):
        with patch("clipkeep.classifier.MAX_IMAGE_SIZE", 4):
            assert classifier.classify(ClipboardSnapshot(image_bytes=b"12345")) is None

    def test_oversized_text_dropped(self, classifier):
        with patch("clipkeep.classifier.MAX_TEXT_SIZE", 4):
            assert classifier.classify(ClipboardSnapshot(text="hello")) is None


class TestDuplicateSuppression:
    def test_same_text_within_window_ignored(self, classifier, storage, clock):
        first = classifier.classify(ClipboardSnapshot(text="copied twice"))
        storage.insert(first)
        clock.advance(seconds=1)
        assert classifier.classify(ClipboardSnapshot(text="copied twice")) is None
        assert storage.count() == 1

    def test_same_text_after_window_kept(self, classifier, storage, clock):
        storage.insert(classifier.classify(ClipboardSnapshot(text="copied twice")))
        clock.advance(seconds=3)
        second = classifier.classify(ClipboardSnapshot(text="copied twice"))
        assert second is not None
        storage.insert(second)
        assert storage.count() == 2

    def test_different_text_kept(self, classifier, storage, clock):
        storage.insert(classifier.classify(ClipboardSnapshot(text="one")))
        clock.advance(seconds=1)
        assert classifier.classify(ClipboardSnapshot(text="two")) is not None

    def test_images_never_deduplicated(self, classifier, storage):
        storage.insert(classifier.classify(ClipboardSnapshot(image_bytes=b"png")))
        assert classifier.classify(ClipboardSnapshot(image_bytes=b"png")) is not None


class TestSensitiveTagging:
    def test_secret_tagged(self, classifier):
        item = classifier.classify(ClipboardSnapshot(text="sk-ant-abcdef1234567890"))
        assert item.is_sensitive is True

    def test_ordinary_text_untagged(self, classifier):
        assert classifier.classify(ClipboardSnapshot(text="lunch at noon")).is_sensitive is False

    def test_protection_disabled(self, storage, clock):
        classifier = ContentClassifier(
            storage, Settings(sensitive_protection=False), clock=clock, thumbnailer=lambda paths: None
        )
        item = classifier.classify(ClipboardSnapshot(text="sk-ant-abcdef1234567890"))
        assert item.is_sensitive is False


class TestFailureHandling:
    def test_storage_error_yields_none(self, settings, clock):
        storage = MagicMock()
        storage.latest_text_item.side_effect = RuntimeError("db gone")
        classifier = ContentClassifier(storage, settings, clock=clock)
        assert classifier.classify(ClipboardSnapshot(text="hello")) is None

    def test_thumbnail_failure_is_best_effort(self, storage, settings, clock):
        thumbnailer = MagicMock(side_effect=OSError("unreadable"))
        classifier = ContentClassifier(storage, settings, clock=clock, thumbnailer=thumbnailer)
        item = classifier.classify(ClipboardSnapshot(files=["/tmp/photo.png"]))
        assert item.content_type == ContentType.FILE
        assert item.thumbnail_data is None

    def test_thumbnail_attached(self, storage, settings, clock):
        classifier = ContentClassifier(storage, settings, clock=clock, thumbnailer=lambda paths: b"thumb")
        item = classifier.classify(ClipboardSnapshot(files=["/tmp/photo.png"]))
        assert item.thumbnail_data == b"thumb"
