"""Wire format: request-line parsing, request classification and response framing.

Only the request target is consulted; headers, body, method and version are
never read. Responses are written by hand with a JSON body and an exact
Content-Length.
"""

import json
from dataclasses import dataclass, field

from chatrelay.errors import RequestParseError

LOGS_PATH = "/logs"
STATUS_TEXT = {
    200: "OK",
    404: "Not Found",
    500: "Internal Server Error",
}


@dataclass(frozen=True)
class AppendRequest:
    user: str
    message: str  # still percent-encoded


@dataclass(frozen=True)
class ReadLogsRequest:
    pass


@dataclass(frozen=True)
class NotFoundRequest:
    target: str


RequestKind = AppendRequest | ReadLogsRequest | NotFoundRequest


def parse_request_line(line: bytes | str) -> str:
    """Return the target (second token) of a request line."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    parts = line.split()
    if len(parts) < 2:
        raise RequestParseError(f"Malformed request line: {line[:80]!r}")
    return parts[1]


def read_request_target(rfile, max_length: int = 8192) -> str:
    """Read a single line from a binary stream and return its target.

    A line that fills max_length without reaching its newline is rejected
    rather than cut short, so a partial target is never acted on.
    """
    line = rfile.readline(max_length)
    if not line:
        raise RequestParseError("Connection closed before a request line")
    if len(line) >= max_length and not line.endswith(b"\n"):
        raise RequestParseError(f"Request line exceeds {max_length} bytes")
    return parse_request_line(line)


def classify_target(target: str) -> RequestKind:
    """Map a request target to the kind of request it is. Pure; no I/O."""
    if "?" in target:
        path, message = target.split("?", 1)
        return AppendRequest(user=path.lstrip("/"), message=message)
    if target == LOGS_PATH:
        return ReadLogsRequest()
    return NotFoundRequest(target=target)


@dataclass
class HttpResponse:
    status_code: int
    body: str
    headers: list[tuple[str, str]] = field(
        default_factory=lambda: [("Content-Type", "application/json")]
    )

    @property
    def status_text(self) -> str:
        return STATUS_TEXT.get(self.status_code, "Unknown")

    def to_bytes(self) -> bytes:
        body = self.body.encode("utf-8")
        lines = [f"HTTP/1.1 {self.status_code} {self.status_text}"]
        lines.extend(f"{k}: {v}" for k, v in self.headers)
        lines.append(f"Content-Length: {len(body)}")
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("utf-8") + body


def json_response(status_code: int, payload: dict) -> HttpResponse:
    return HttpResponse(status_code, json.dumps(payload))


def logs_response(contents: str) -> HttpResponse:
    return json_response(200, {"logs": contents})


def no_logs_response() -> HttpResponse:
    return json_response(200, {"error": "No logs found"})


def not_found_response() -> HttpResponse:
    return json_response(404, {"error": "Invalid URL"})


def store_failed_response() -> HttpResponse:
    return json_response(500, {"error": "Failed to store message"})
