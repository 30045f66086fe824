import logging
from dataclasses import dataclass
from typing import Callable

import rumps

from clipkeep import __version__
from clipkeep.service import ClipKeepService
from clipkeep.utils import ensure_dirs

logger = logging.getLogger(__name__)


@dataclass
class MenuItemSpec:
    """Specification for a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    state: bool | None = None


def rumps_timer(interval: float, callback: Callable[[], None]) -> rumps.Timer:
    """Adapt a no-argument tick to rumps' main-thread timer."""
    return rumps.Timer(lambda _sender: callback(), interval)


class ClipKeepApp(rumps.App):
    """Menu bar host: runs the backend and exposes a few controls."""

    def __init__(self):
        super().__init__("ClipKeep", title="📋", quit_button=None)
        self._init_app()

    def _init_app(self) -> None:
        """Initialize app components. Separated for testability."""
        ensure_dirs()
        self._menu_dirty = False
        self._service = ClipKeepService(on_change=self._refresh_menu, timer_factory=rumps_timer)
        self._service.start()
        self._build_menu()
        # API handlers run off the main thread; menu rebuilds happen on this timer.
        self._menu_timer = rumps.Timer(self._on_menu_tick, 1.0)
        self._menu_timer.start()

    def _build_menu(self) -> None:
        self.menu.clear()
        self.menu = [self._render_spec(spec) for spec in self._compute_menu_specs()]

    def _compute_menu_specs(self) -> list[MenuItemSpec | None]:
        """Compute menu item specifications. Pure logic, no rumps dependency."""
        service = self._service
        if service.api_server.is_running:
            api_status = f"API: listening on 127.0.0.1:{service.api_server.port}"
        else:
            api_status = "API: stopped"
        return [
            MenuItemSpec(f"ClipKeep v{__version__} - {service.monitor.item_count} items"),
            MenuItemSpec(api_status),
            None,  # separator
            MenuItemSpec("Incognito", callback=self._on_toggle_incognito, state=service.settings.incognito),
            MenuItemSpec("Copy API Token", callback=self._on_copy_token),
            MenuItemSpec("Regenerate API Token", callback=self._on_regenerate_token),
            None,  # separator
            MenuItemSpec("Clear History", callback=self._on_clear),
            None,  # separator
            MenuItemSpec("Quit ClipKeep", callback=self._on_quit),
        ]

    @staticmethod
    def _render_spec(spec: MenuItemSpec | None) -> rumps.MenuItem | None:
        if spec is None:
            return None
        item = rumps.MenuItem(spec.title, callback=spec.callback)
        if spec.state is not None:
            item.state = int(spec.state)
        return item

    def _refresh_menu(self) -> None:
        self._menu_dirty = True

    def _on_menu_tick(self, _sender) -> None:
        if self._menu_dirty:
            self._menu_dirty = False
            self._build_menu()

    def _on_toggle_incognito(self, _sender) -> None:
        settings = self._service.settings
        settings.incognito = not settings.incognito
        try:
            settings.save()
        except OSError:
            logger.exception("Failed to save settings")
        self._build_menu()

    def _copy_text(self, text: str) -> None:
        from AppKit import NSPasteboard, NSPasteboardTypeString

        pb = NSPasteboard.generalPasteboard()
        pb.clearContents()
        pb.setString_forType_(text, NSPasteboardTypeString)
        self._service.monitor.sync_change_count()

    def _on_copy_token(self, _sender) -> None:
        try:
            self._copy_text(self._service.tokens.current())
            rumps.notification("ClipKeep", "", "API token copied", sound=False)
        except Exception:
            logger.exception("Error copying API token")

    def _on_regenerate_token(self, _sender) -> None:
        if rumps.alert("ClipKeep", "Regenerate the API token? Existing clients stop working.", ok="Regenerate", cancel="Cancel"):
            try:
                self._service.tokens.regenerate()
                rumps.notification("ClipKeep", "", "API token regenerated", sound=False)
            except Exception:
                logger.exception("Error regenerating API token")

    def _on_clear(self, _sender) -> None:
        if rumps.alert("ClipKeep", "Clear clipboard history? Pinned items are kept.", ok="Clear", cancel="Cancel"):
            self._service.monitor.clear_history(keep_pinned=True)
            self._build_menu()

    def _on_quit(self, _sender) -> None:
        self._menu_timer.stop()
        self._service.close()
        rumps.quit_application()
