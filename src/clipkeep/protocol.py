"""Minimal HTTP/1.1 request parsing and response framing.

One request per connection: no keep-alive, no chunked bodies. The parser
works on a byte buffer and knows nothing about sockets or threads.
"""

import json
from dataclasses import dataclass, field
from urllib.parse import parse_qs, unquote, urlsplit

HEADER_END = b"\r\n\r\n"

STATUS_TEXT = {
    200: "OK",
    201: "Created",
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
}


class MalformedRequest(ValueError):
    pass


class HttpError(Exception):
    """Raised by handlers to answer with ``{"error": message}``."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


@dataclass
class HttpRequest:
    method: str
    path: str
    version: str
    query: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def query_param(self, name: str) -> str | None:
        values = self.query.get(name)
        return values[0] if values else None

    def json(self):
        if not self.body:
            raise MalformedRequest("Request body is empty")
        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise MalformedRequest(f"Invalid JSON body: {e}") from e

    @property
    def segments(self) -> list[str]:
        return [unquote(s) for s in self.path.split("/") if s]


def _content_length(head: bytes) -> int:
    for line in head.split(b"\r\n")[1:]:
        name, sep, value = line.partition(b":")
        if sep and name.strip().lower() == b"content-length":
            try:
                return max(0, int(value.strip()))
            except ValueError:
                return 0
    return 0


def is_complete(buffer: bytes) -> bool:
    """True once the headers and the declared body have arrived."""
    end = buffer.find(HEADER_END)
    if end < 0:
        return False
    return len(buffer) - (end + len(HEADER_END)) >= _content_length(buffer[:end])


def parse_request(data: bytes) -> HttpRequest:
    end = data.find(HEADER_END)
    if end < 0:
        raise MalformedRequest("Incomplete request headers")

    lines = data[:end].decode("iso-8859-1").split("\r\n")
    parts = lines[0].split(" ")
    if len(parts) != 3:
        raise MalformedRequest("Invalid request line")
    method, target, version = parts
    if not method.isalpha() or not method.isupper():
        raise MalformedRequest("Invalid method")
    if not target.startswith("/"):
        raise MalformedRequest("Invalid request target")
    if not version.startswith("HTTP/"):
        raise MalformedRequest("Invalid HTTP version")

    headers: dict[str, str] = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            raise MalformedRequest("Invalid header line")
        headers[name.strip().lower()] = value.strip()

    body = data[end + len(HEADER_END):]
    if "content-length" in headers:
        try:
            length = int(headers["content-length"])
        except ValueError as e:
            raise MalformedRequest("Invalid Content-Length") from e
        if length < 0 or len(body) < length:
            raise MalformedRequest("Incomplete request body")
        body = body[:length]

    split = urlsplit(target)
    return HttpRequest(
        method=method,
        path=split.path,
        version=version,
        query=parse_qs(split.query),
        headers=headers,
        body=body,
    )


def bearer_token(request: HttpRequest) -> str | None:
    value = request.header("authorization")
    if not value or not value.startswith("Bearer "):
        return None
    token = value[len("Bearer "):].strip()
    return token or None


def build_response(
    status: int,
    body: bytes,
    content_type: str = "application/json",
) -> bytes:
    head = (
        f"HTTP/1.1 {status} {STATUS_TEXT.get(status, 'Unknown')}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Access-Control-Allow-Origin: *\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body


def json_response(status: int, payload: dict) -> bytes:
    body = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
    return build_response(status, body)


def error_response(status: int, message: str) -> bytes:
    return json_response(status, {"error": message})
