"""Tests for app.py menu logic.

ClipKeepApp inherits from rumps.App, which needs the macOS GUI stack, so the
app is built with ``__new__`` and a mocked service.
"""
from unittest.mock import MagicMock, patch

import pytest

rumps = pytest.importorskip("rumps")

from clipkeep.app import ClipKeepApp, MenuItemSpec  # noqa: E402


@pytest.fixture
def app():
    instance = ClipKeepApp.__new__(ClipKeepApp)
    instance._service = MagicMock()
    instance._service.monitor.item_count = 2
    instance._service.api_server.is_running = True
    instance._service.api_server.port = 19847
    instance._service.settings.incognito = False
    instance._menu_dirty = False
    return instance


class TestMenuSpecs:
    def test_header_shows_item_count(self, app):
        specs = app._compute_menu_specs()
        assert specs[0].title.endswith("2 items")

    def test_api_status(self, app):
        assert app._compute_menu_specs()[1].title == "API: listening on 127.0.0.1:19847"
        app._service.api_server.is_running = False
        assert app._compute_menu_specs()[1].title == "API: stopped"

    def test_incognito_state(self, app):
        app._service.settings.incognito = True
        incognito = next(s for s in app._compute_menu_specs() if s and s.title == "Incognito")
        assert incognito.state is True

    def test_render_separator(self):
        assert ClipKeepApp._render_spec(None) is None


class TestMenuRefresh:
    def test_refresh_is_deferred_to_tick(self, app):
        with patch.object(ClipKeepApp, "_build_menu") as mock_build:
            app._refresh_menu()
            mock_build.assert_not_called()
            app._on_menu_tick(None)
            mock_build.assert_called_once()
            app._on_menu_tick(None)
            mock_build.assert_called_once()


class TestActions:
    def test_toggle_incognito_saves(self, app):
        with patch.object(ClipKeepApp, "_build_menu"):
            app._on_toggle_incognito(None)
        assert app._service.settings.incognito is True
        app._service.settings.save.assert_called_once()

    @patch("clipkeep.app.rumps.alert", return_value=1)
    def test_clear_keeps_pinned(self, _mock_alert, app):
        with patch.object(ClipKeepApp, "_build_menu"):
            app._on_clear(None)
        app._service.monitor.clear_history.assert_called_once_with(keep_pinned=True)

    @patch("clipkeep.app.rumps.alert", return_value=0)
    def test_clear_cancelled(self, _mock_alert, app):
        app._on_clear(None)
        app._service.monitor.clear_history.assert_not_called()

    @patch("clipkeep.app.rumps.notification")
    @patch("clipkeep.app.rumps.alert", return_value=1)
    def test_regenerate_token(self, _mock_alert, _mock_notify, app):
        app._on_regenerate_token(None)
        app._service.tokens.regenerate.assert_called_once()


def test_menu_item_spec_defaults():
    spec = MenuItemSpec("Title")
    assert spec.callback is None
    assert spec.state is None
