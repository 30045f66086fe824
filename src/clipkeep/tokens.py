import hmac
import json
import logging
import os
import sys
import threading
import uuid
from pathlib import Path

from clipkeep.config import DATA_DIR, TOKEN_KEY, TOKEN_SERVICE

logger = logging.getLogger(__name__)


class KeychainTokenStore:
    """Generic passwords in the login keychain, via the Security framework."""

    def __init__(self, service: str = TOKEN_SERVICE):
        self._service = service

    @staticmethod
    def _security():
        import Security

        return Security

    def _query(self, sec, key: str) -> dict:
        return {
            sec.kSecClass: sec.kSecClassGenericPassword,
            sec.kSecAttrService: self._service,
            sec.kSecAttrAccount: key,
        }

    def load(self, key: str) -> str | None:
        sec = self._security()
        query = self._query(sec, key)
        query[sec.kSecReturnData] = True
        query[sec.kSecMatchLimit] = sec.kSecMatchLimitOne
        status, data = sec.SecItemCopyMatching(query, None)
        if status != sec.errSecSuccess or data is None:
            if status != sec.errSecItemNotFound:
                logger.warning("Keychain lookup for %s failed (status %d)", key, status)
            return None
        value = bytes(data).decode("utf-8").strip()
        return value or None

    def save(self, key: str, value: str) -> None:
        sec = self._security()
        query = self._query(sec, key)
        data = value.encode("utf-8")
        status = sec.SecItemUpdate(query, {sec.kSecValueData: data})
        if status == sec.errSecItemNotFound:
            query[sec.kSecValueData] = data
            status, _ = sec.SecItemAdd(query, None)
        if status != sec.errSecSuccess:
            raise OSError(f"Failed to save {key} to keychain (status {status})")

    def delete(self, key: str) -> None:
        sec = self._security()
        status = sec.SecItemDelete(self._query(sec, key))
        if status not in (sec.errSecSuccess, sec.errSecItemNotFound):
            logger.warning("Keychain delete for %s failed (status %d)", key, status)


class FileTokenStore:
    """JSON file readable only by the owner, for hosts without a keychain."""

    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path else DATA_DIR / "credentials.json"

    def _read(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to read credentials from %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def load(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def save(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


def default_token_store():
    if sys.platform == "darwin":
        return KeychainTokenStore()
    return FileTokenStore()


def generate_token() -> str:
    return str(uuid.uuid4())


class ApiTokenManager:
    """The bearer token guarding the local API.

    The token is created on first use and persisted in ``store``.
    ``regenerate`` swaps it immediately; the old value stops verifying at
    once. ``verify`` re-reads the store on every call, so a token replaced by
    another process (``clipkeep token --regenerate``) takes effect without a
    restart.
    """

    def __init__(self, store, key: str = TOKEN_KEY):
        self._store = store
        self._key = key
        self._token: str | None = None
        self._lock = threading.Lock()

    @property
    def token(self) -> str:
        with self._lock:
            if self._token is None:
                existing = self._store.load(self._key)
                if existing:
                    self._token = existing
                else:
                    self._token = generate_token()
                    self._store.save(self._key, self._token)
            return self._token

    def regenerate(self) -> str:
        new_token = generate_token()
        with self._lock:
            self._store.save(self._key, new_token)
            self._token = new_token
        logger.info("API token regenerated")
        return new_token

    def current(self) -> str:
        """The persisted token, refreshing the cached copy if it changed."""
        with self._lock:
            stored = self._store.load(self._key)
            if stored and stored != self._token:
                self._token = stored
        return self.token

    def verify(self, candidate: str | None) -> bool:
        if not candidate:
            return False
        return hmac.compare_digest(candidate.encode("utf-8"), self.current().encode("utf-8"))
