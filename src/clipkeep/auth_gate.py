"""Time-boxed unlock state for sensitive clipboard items.

The OS authentication prompt (Touch ID / password) is an external
collaborator passed in as a callable; this module only remembers who was
unlocked and when. Expired entries are pruned when read, there is no
background timer.
"""

import logging
import threading
import time
from collections.abc import Callable

from clipkeep.config import AUTH_TIMEOUT
from clipkeep.models import ClipboardItem

logger = logging.getLogger(__name__)

Authenticator = Callable[[str], bool]


class AuthenticationGate:
    def __init__(
        self,
        authenticator: Authenticator | None = None,
        timeout: float = AUTH_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._authenticator = authenticator
        self.timeout = timeout
        self._clock = clock
        self._authenticated_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def is_authenticated(self, item_id: str) -> bool:
        with self._lock:
            at = self._authenticated_at.get(item_id)
            if at is None:
                return False
            if self._clock() - at >= self.timeout:
                del self._authenticated_at[item_id]
                return False
            return True

    def record(self, item_id: str) -> None:
        with self._lock:
            self._authenticated_at[item_id] = self._clock()

    def authenticate(self, item_id: str, reason: str = "authenticate to view sensitive content") -> bool:
        if self.is_authenticated(item_id):
            return True
        if self._authenticator is None:
            logger.error("Authentication not available: no authenticator configured")
            return False
        try:
            success = bool(self._authenticator(reason))
        except Exception:
            logger.exception("Authentication failed")
            return False
        if success:
            self.record(item_id)
            logger.info("Authentication successful for item")
        return success

    def can_reveal(self, item: ClipboardItem) -> bool:
        return not item.is_sensitive or self.is_authenticated(item.id)

    def clear(self, item_id: str) -> None:
        with self._lock:
            self._authenticated_at.pop(item_id, None)

    def clear_all(self) -> None:
        with self._lock:
            self._authenticated_at.clear()
