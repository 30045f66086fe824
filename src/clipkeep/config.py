import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("CLIPKEEP_DATA_DIR", Path.home() / ".local" / "share" / "clipkeep"))
DB_PATH = DATA_DIR / "clipkeep.db"
LOG_PATH = DATA_DIR / "clipkeep.log"
SETTINGS_PATH = DATA_DIR / "settings.json"

POLL_INTERVAL = 0.5  # seconds between clipboard checks
DEFAULT_HISTORY_LIMIT = 500  # non-pinned items kept
DUPLICATE_WINDOW = 2.0  # seconds, same text copied again is ignored
AUTH_TIMEOUT = 300.0  # seconds a sensitive item stays unlocked
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit
THUMBNAIL_SIZE = (120, 120)  # pixels
THUMBNAIL_TIMEOUT = 2.0  # seconds before a thumbnail attempt is abandoned

API_HOST = "127.0.0.1"
API_VERSION = "1.1"
MAX_REQUEST_SIZE = 65536  # bytes read per connection
REQUEST_TIMEOUT = 30.0  # seconds to receive a complete request
API_ITEMS_LIMIT = 100
API_SCREENSHOTS_LIMIT = 50
RECENT_ITEMS_LIMIT = 50  # items kept in the host's in-memory snapshot
SCREENSHOT_MAX_AGE = 30.0  # seconds, older screenshot files are ignored
SCREENSHOT_SETTLE_DELAY = 0.5  # seconds to let the system finish writing
SCREENSHOT_READ_RETRIES = 3
TOKEN_SERVICE = "clipkeep"
TOKEN_KEY = "ClipKeepAPIToken"


def _parse_int(raw: str | None, default: int, minimum: int, maximum: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return max(minimum, min(maximum, value))


def _parse_bool(raw, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    return default


def _parse_api_port() -> int:
    return _parse_int(os.environ.get("CLIPKEEP_API_PORT"), 19847, 1024, 65535)


API_PORT = _parse_api_port()

DEFAULT_EXCLUDED_APPS = [
    "com.agilebits.onepassword7",
    "com.agilebits.onepassword-osx",
    "com.1password.1password",
    "com.lastpass.LastPass",
    "com.bitwarden.desktop",
    "com.dashlane.dashlanephonefinal",
]


@dataclass
class Settings:
    """User-tunable behaviour, constructed once at startup and passed around."""

    history_limit: int = DEFAULT_HISTORY_LIMIT
    auto_clear_days: int = 0  # 0 = never
    incognito: bool = False
    excluded_apps: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_APPS))
    sensitive_protection: bool = True
    api_enabled: bool = True
    api_port: int = API_PORT
    capture_screenshots: bool = True

    def is_app_excluded(self, bundle_id: str | None) -> bool:
        if bundle_id is None:
            return False
        return bundle_id in self.excluded_apps

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        defaults = cls()
        excluded = data.get("excluded_apps")
        if not isinstance(excluded, list) or not all(isinstance(a, str) for a in excluded):
            excluded = defaults.excluded_apps
        return cls(
            history_limit=_parse_int(data.get("history_limit"), defaults.history_limit, 1, 10_000),
            auto_clear_days=_parse_int(data.get("auto_clear_days"), 0, 0, 3650),
            incognito=_parse_bool(data.get("incognito"), False),
            excluded_apps=excluded,
            sensitive_protection=_parse_bool(data.get("sensitive_protection"), True),
            api_enabled=_parse_bool(data.get("api_enabled"), True),
            api_port=_parse_int(data.get("api_port"), defaults.api_port, 1024, 65535),
            capture_screenshots=_parse_bool(data.get("capture_screenshots"), True),
        )

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Settings":
        """Read settings.json, then apply CLIPKEEP_* environment overrides."""
        path = Path(path) if path else SETTINGS_PATH
        data: dict = {}
        if path.exists():
            try:
                loaded = json.loads(path.read_text(encoding="utf-8"))
                if isinstance(loaded, dict):
                    data = loaded
                else:
                    logger.warning("Ignoring settings file %s: not a JSON object", path)
            except (OSError, ValueError):
                logger.exception("Failed to read settings from %s", path)

        env_overrides = {
            "history_limit": os.environ.get("CLIPKEEP_HISTORY_LIMIT"),
            "auto_clear_days": os.environ.get("CLIPKEEP_AUTO_CLEAR_DAYS"),
            "incognito": os.environ.get("CLIPKEEP_INCOGNITO"),
            "api_enabled": os.environ.get("CLIPKEEP_API_ENABLED"),
        }
        data.update({k: v for k, v in env_overrides.items() if v is not None})
        return cls.from_dict(data)

    def save(self, path: str | Path | None = None) -> None:
        path = Path(path) if path else SETTINGS_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
