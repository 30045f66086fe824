"""Localhost automation API over a raw TCP socket.

Each accepted connection gets its own thread, carries exactly one request
and is closed after the response is written. Handlers touch the history
store only through ``StorageManager``, whose lock serialises them with the
clipboard monitor.
"""

import logging
import socket
import threading
import time
import uuid
from collections.abc import Callable
from enum import Enum

from clipkeep.classifier import make_text_item
from clipkeep.config import (
    API_HOST,
    API_ITEMS_LIMIT,
    API_SCREENSHOTS_LIMIT,
    API_VERSION,
    MAX_REQUEST_SIZE,
    REQUEST_TIMEOUT,
    Settings,
)
from clipkeep.models import ClipboardItem, ContentType
from clipkeep.pasteboard import simulate_paste_keystroke
from clipkeep.protocol import (
    HttpError,
    HttpRequest,
    MalformedRequest,
    bearer_token,
    build_response,
    error_response,
    is_complete,
    json_response,
    parse_request,
)
from clipkeep.retention import RetentionEnforcer
from clipkeep.sensitive import is_sensitive
from clipkeep.storage import StorageManager
from clipkeep.tokens import ApiTokenManager
from clipkeep.utils import format_timestamp

logger = logging.getLogger(__name__)

CREATABLE_TYPES = (ContentType.TEXT, ContentType.URL)


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


def item_summary(item: ClipboardItem) -> dict:
    return {
        "id": item.id,
        "type": item.content_type.value,
        "text": item.text_content or "",
        "timestamp": format_timestamp(item.timestamp),
        "sourceApp": item.source_app_name or "",
        "isPinned": item.is_pinned,
        "characterCount": item.character_count or 0,
    }


def item_detail(item: ClipboardItem) -> dict:
    detail = {
        "id": item.id,
        "type": item.content_type.value,
        "timestamp": format_timestamp(item.timestamp),
        "sourceApp": item.source_app_name or "",
        "isPinned": item.is_pinned,
        "characterCount": item.character_count or 0,
        "isSensitive": item.is_sensitive,
    }
    if item.content_type in CREATABLE_TYPES:
        detail["content"] = item.text_content or ""
    return detail


def _parse_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError:
        raise HttpError(400, "Invalid ID") from None


class LocalAPIServer:
    def __init__(
        self,
        storage: StorageManager,
        tokens: ApiTokenManager,
        settings: Settings,
        retention: RetentionEnforcer,
        copy_item: Callable[[ClipboardItem], bool] | None = None,
        simulate_paste: Callable[[], bool] = simulate_paste_keystroke,
        on_change: Callable[[], None] | None = None,
        host: str = API_HOST,
        port: int | None = None,
        request_timeout: float = REQUEST_TIMEOUT,
    ):
        self._storage = storage
        self._tokens = tokens
        self._settings = settings
        self._retention = retention
        self._copy_item = copy_item
        self._simulate_paste = simulate_paste
        self._on_change = on_change
        self._host = host
        self._requested_port = port
        self._request_timeout = request_timeout
        self._sock: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._stopping = threading.Event()
        self._connections: set[socket.socket] = set()
        self._lock = threading.Lock()
        self.state = ServerState.STOPPED
        self.port: int | None = None

        self._routes: list[tuple[tuple[str, ...], dict[str, Callable]]] = [
            (("api", "health"), {"GET": self._handle_health}),
            (("api", "items"), {"GET": self._handle_list_items, "POST": self._handle_create_item}),
            (("api", "items", ":item_id"), {"GET": self._handle_get_item, "DELETE": self._handle_delete_item}),
            (("api", "items", ":item_id", "copy"), {"POST": self._handle_copy_item}),
            (("api", "items", ":item_id", "paste"), {"POST": self._handle_paste_item}),
            (("api", "items", ":item_id", "pin"), {"PUT": self._handle_toggle_pin}),
            (("api", "search"), {"GET": self._handle_search}),
            (("api", "screenshots"), {"GET": self._handle_list_screenshots}),
            (("api", "screenshots", ":item_id", "image"), {"GET": self._handle_screenshot_image}),
            (("api", "paste"), {"POST": self._handle_paste}),
        ]

    @property
    def is_running(self) -> bool:
        return self.state == ServerState.RUNNING

    # ── Lifecycle ────────────────────────────────────────────

    def start(self) -> bool:
        with self._lock:
            if self.state != ServerState.STOPPED:
                return self.state == ServerState.RUNNING
            if not self._settings.api_enabled:
                logger.info("API server disabled in settings")
                return False
            self.state = ServerState.STARTING

        port = self._requested_port if self._requested_port is not None else self._settings.api_port
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._host, port))
            sock.listen(16)
            sock.settimeout(0.5)
        except OSError:
            logger.exception("Failed to start API server on %s:%d", self._host, port)
            sock.close()
            with self._lock:
                self.state = ServerState.STOPPED
            return False

        self._stopping.clear()
        self._sock = sock
        self.port = sock.getsockname()[1]
        self._accept_thread = threading.Thread(target=self._accept_loop, name="clipkeep-api", daemon=True)
        self._accept_thread.start()
        with self._lock:
            self.state = ServerState.RUNNING
        logger.info("API server started on %s:%d", self._host, self.port)
        return True

    def stop(self) -> None:
        self._stopping.set()
        with self._lock:
            sock, self._sock = self._sock, None
            connections = list(self._connections)
            self._connections.clear()
            was_running = self.state != ServerState.STOPPED
            self.state = ServerState.STOPPED

        if sock is not None:
            sock.close()
        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()

        thread, self._accept_thread = self._accept_thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        if was_running:
            logger.info("API server stopped")

    def _accept_loop(self) -> None:
        sock = self._sock
        while not self._stopping.is_set() and sock is not None:
            try:
                conn, _addr = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if not self._stopping.is_set():
                    logger.exception("API server accept failed")
                break
            with self._lock:
                if self._stopping.is_set():
                    conn.close()
                    break
                self._connections.add(conn)
            threading.Thread(target=self._serve_connection, args=(conn,), daemon=True).start()

    # ── Connection handling ──────────────────────────────────

    def _serve_connection(self, conn: socket.socket) -> None:
        try:
            data = self._receive(conn)
            if data:
                conn.sendall(self.handle_bytes(data))
        except OSError:
            logger.debug("Connection error", exc_info=True)
        finally:
            with self._lock:
                self._connections.discard(conn)
            conn.close()

    def _receive(self, conn: socket.socket) -> bytes:
        deadline = time.monotonic() + self._request_timeout
        buffer = b""
        while len(buffer) < MAX_REQUEST_SIZE and not is_complete(buffer):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("Request not received in time")
            conn.settimeout(remaining)
            chunk = conn.recv(MAX_REQUEST_SIZE - len(buffer))
            if not chunk:
                break
            buffer += chunk
        return buffer

    def handle_bytes(self, data: bytes) -> bytes:
        """Turn one raw request into one raw response."""
        if not is_complete(data):
            if len(data) >= MAX_REQUEST_SIZE:
                return error_response(400, "Request too large")
            return error_response(400, "Invalid request")
        try:
            request = parse_request(data)
        except MalformedRequest:
            return error_response(400, "Invalid request")

        if not self._tokens.verify(bearer_token(request)):
            return error_response(401, "Unauthorized")

        return self.dispatch(request)

    def dispatch(self, request: HttpRequest) -> bytes:
        handler, params = self._resolve(request)
        try:
            return handler(request, **params)
        except HttpError as e:
            return error_response(e.status, e.message)
        except MalformedRequest as e:
            return error_response(400, str(e))
        except Exception:
            logger.exception("Error handling %s %s", request.method, request.path)
            return error_response(500, "Internal server error")

    def _resolve(self, request: HttpRequest) -> tuple[Callable, dict]:
        segments = request.segments
        for pattern, methods in self._routes:
            if len(pattern) != len(segments):
                continue
            params = {}
            for expected, actual in zip(pattern, segments):
                if expected.startswith(":"):
                    params[expected[1:]] = actual
                elif expected != actual:
                    break
            else:
                handler = methods.get(request.method)
                if handler is None:
                    return self._method_not_allowed, {}
                return handler, params
        return self._not_found, {}

    @staticmethod
    def _not_found(_request: HttpRequest) -> bytes:
        raise HttpError(404, "Not found")

    @staticmethod
    def _method_not_allowed(_request: HttpRequest) -> bytes:
        raise HttpError(405, "Method not allowed")

    def _get_item(self, raw_id: str) -> ClipboardItem:
        item = self._storage.fetch_by_id(_parse_id(raw_id))
        if item is None:
            raise HttpError(404, "Item not found")
        return item

    def _notify_change(self) -> None:
        if self._on_change:
            self._on_change()

    def _copy(self, item: ClipboardItem) -> None:
        if self._copy_item is None or not self._copy_item(item):
            raise HttpError(500, "Failed to write to clipboard")

    # ── Handlers ─────────────────────────────────────────────

    def _handle_health(self, _request: HttpRequest) -> bytes:
        return json_response(200, {"status": "ok", "version": API_VERSION})

    def _handle_list_items(self, _request: HttpRequest) -> bytes:
        items = self._storage.fetch_all(limit=API_ITEMS_LIMIT)
        return json_response(200, {"items": [item_summary(i) for i in items]})

    def _handle_get_item(self, _request: HttpRequest, item_id: str) -> bytes:
        return json_response(200, item_detail(self._get_item(item_id)))

    def _handle_search(self, request: HttpRequest) -> bytes:
        query = request.query_param("q")
        if query is None or not query.strip():
            raise HttpError(400, "Missing query parameter 'q'")
        items = self._storage.search(query, limit=API_ITEMS_LIMIT)
        return json_response(200, {
            "query": query,
            "count": len(items),
            "items": [item_summary(i) for i in items],
        })

    def _handle_list_screenshots(self, _request: HttpRequest) -> bytes:
        items = self._storage.fetch_where(content_types=(ContentType.IMAGE,), limit=API_SCREENSHOTS_LIMIT)
        return json_response(200, {
            "screenshots": [
                {
                    "id": i.id,
                    "timestamp": format_timestamp(i.timestamp),
                    "sourceApp": i.source_app_name or "",
                }
                for i in items
            ]
        })

    def _handle_screenshot_image(self, _request: HttpRequest, item_id: str) -> bytes:
        item = self._storage.fetch_by_id(_parse_id(item_id))
        if item is None or item.content_type != ContentType.IMAGE:
            raise HttpError(404, "Screenshot not found")
        return build_response(200, item.content, content_type="image/png")

    def _handle_create_item(self, request: HttpRequest) -> bytes:
        payload = request.json()
        if not isinstance(payload, dict):
            raise HttpError(400, "Request body must be a JSON object")

        content = payload.get("content")
        if not isinstance(content, str) or not content:
            raise HttpError(400, "Missing required field: content")

        try:
            content_type = ContentType(payload.get("type") or ContentType.TEXT.value)
        except ValueError:
            content_type = None
        if content_type not in CREATABLE_TYPES:
            raise HttpError(400, "Only text and url items can be created")

        source_app_name = payload.get("sourceAppName")
        if source_app_name is not None and not isinstance(source_app_name, str):
            raise HttpError(400, "sourceAppName must be a string")
        is_pinned = payload.get("isPinned", False)
        if not isinstance(is_pinned, bool):
            raise HttpError(400, "isPinned must be a boolean")
        sensitive = payload.get("isSensitive")
        if sensitive is None:
            sensitive = self._settings.sensitive_protection and is_sensitive(content)
        elif not isinstance(sensitive, bool):
            raise HttpError(400, "isSensitive must be a boolean")

        item = make_text_item(
            content,
            content_type,
            source_app_name=source_app_name,
            is_pinned=is_pinned,
            sensitive=sensitive,
        )
        with self._storage.lock:
            self._storage.insert(item)
            self._retention.enforce_history_limit()
        self._notify_change()

        return json_response(201, {
            "id": item.id,
            "type": item.content_type.value,
            "timestamp": format_timestamp(item.timestamp),
            "message": "Item created",
        })

    def _handle_copy_item(self, _request: HttpRequest, item_id: str) -> bytes:
        self._copy(self._get_item(item_id))
        return json_response(200, {"message": "Copied to clipboard"})

    def _handle_paste_item(self, _request: HttpRequest, item_id: str) -> bytes:
        self._copy(self._get_item(item_id))
        pasted = self._simulate_paste()
        message = "Pasted" if pasted else "Copied to clipboard; paste simulation unavailable"
        return json_response(200, {"message": message, "pasteSimulated": pasted})

    def _handle_paste(self, _request: HttpRequest) -> bytes:
        pasted = self._simulate_paste()
        message = "Pasted" if pasted else "Paste simulation unavailable"
        return json_response(200, {"message": message, "pasteSimulated": pasted})

    def _handle_toggle_pin(self, _request: HttpRequest, item_id: str) -> bytes:
        item_id = _parse_id(item_id)
        pinned = self._storage.toggle_pin(item_id)
        if pinned is None:
            raise HttpError(404, "Item not found")
        self._notify_change()
        return json_response(200, {
            "id": item_id,
            "isPinned": pinned,
            "message": "Item pinned" if pinned else "Item unpinned",
        })

    def _handle_delete_item(self, _request: HttpRequest, item_id: str) -> bytes:
        if not self._storage.delete(_parse_id(item_id)):
            raise HttpError(404, "Item not found")
        self._notify_change()
        return json_response(200, {"message": "Item deleted"})
