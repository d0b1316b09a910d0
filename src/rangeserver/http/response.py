"""
=============================================================================
HTTP RESPONSE FRAMING
=============================================================================

Builds status lines and header blocks, and writes them to the client in
the right order.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 206 Partial Content\r\n          ← status line          │
    │    Content-Type: video/mp4\r\n               ┐                      │
    │    Content-Range: bytes 0-1023/4096\r\n      │                      │
    │    Content-Length: 1024\r\n                  │ header block         │
    │    Accept-Ranges: bytes\r\n                  │ (sent ONCE)          │
    │    Connection: keep-alive\r\n                ┘                      │
    │    \r\n                                      ← separator            │
    │    <1024 bytes of video>                     ← body (streamed)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY A STATEFUL WRITER?
=============================================================================

File bodies are streamed in chunks AFTER the header block has gone out,
with a Content-Length we promised up front. Two mistakes are easy to
make in that situation:

    1. Writing body bytes before the headers.
    2. Hitting an error mid-stream and "helpfully" sending a 500 page,
       which puts a second status line in the middle of the body.

ResponseWriter tracks whether the header block was sent and refuses
both. Once headers_sent is True the only safe recovery is closing the
connection.

=============================================================================
"""

import html
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union

from .errors import ResponseStateError
from .ranges import ByteRange
from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "rangeserver/1.0"

HTML_CONTENT_TYPE = "text/html; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    Status + headers + (optional) in-memory body.

    For file responses the body stays empty and the real bytes are
    streamed separately; Content-Length is then set explicitly.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 206 Partial Content"
        """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header. Returns self for method chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the body, encoding strings as UTF-8."""
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def head_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize the status line and header block, up to and including
        the blank separator line.

        Content-Length defaults to len(body); Date and Server are added
        when missing.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("utf-8") + b"\r\n"

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Complete response (head + in-memory body)."""
        return self.head_bytes(server_name) + self.body


class ResponseWriter:
    """
    Writes exactly one response per request to a byte sink.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ResponseWriter states                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   fresh ──send_error()/send_document()──────────────► complete      │
    │     │                                                                │
    │     └──start_file()/start_range()──► streaming ──write_body()──┐    │
    │                                          ▲                      │    │
    │                                          └──────────────────────┘    │
    │                                                                      │
    │   Any header-sending call after "fresh" → ResponseStateError        │
    │   write_body() while "fresh"           → ResponseStateError         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        writer = ResponseWriter(conn.send)
        writer.start_range("video/mp4", byte_range, keep_alive=True)
        writer.write_body(chunk)

    Args:
        send: Callable that writes all given bytes or raises OSError.
        server_name: Value of the Server header.
    """

    def __init__(self, send: Callable[[bytes], None], server_name: str = DEFAULT_SERVER_NAME):
        self._send = send
        self.server_name = server_name
        self.headers_sent = False
        self.status: Optional[HTTPStatus] = None
        self.content_length = 0
        self.body_bytes_sent = 0
        self.keep_alive = False

    # =========================================================================
    # LOW LEVEL
    # =========================================================================

    def send_head(self, response: HTTPResponse) -> None:
        """
        Send the status line and header block of response.

        Raises:
            ResponseStateError: Headers already went out for this request.
        """
        if self.headers_sent:
            raise ResponseStateError(
                f"Headers already sent (status {self.status}); "
                f"refusing to send {int(response.status)}"
            )

        data = response.head_bytes(self.server_name)
        # Flip the flag before writing: a partial header write is just as
        # unrecoverable as a complete one.
        self.headers_sent = True
        self.status = response.status
        self.content_length = int(response.headers.get("Content-Length", len(response.body)))
        self.keep_alive = response.headers.get("Connection") == "keep-alive"
        self._send(data)

    def write_body(self, data: bytes) -> None:
        """
        Send body bytes after the header block.

        Raises:
            ResponseStateError: No headers have been sent yet.
        """
        if not self.headers_sent:
            raise ResponseStateError("Body bytes written before headers")
        if data:
            self._send(data)
            self.body_bytes_sent += len(data)

    def send_response(self, response: HTTPResponse) -> None:
        """Send a complete response with an in-memory body."""
        self.send_head(response)
        self.write_body(response.body)

    # =========================================================================
    # COMPLETE RESPONSES
    # =========================================================================

    def send_error(self, status: HTTPStatus, message: str = "") -> None:
        """
        Send an HTML error page and mark the connection for closing.

        The message is HTML-escaped, it may echo client input.
        """
        status = HTTPStatus(status)
        body = error_page(status, message).encode("utf-8")
        self.send_response(HTTPResponse(
            status=status,
            headers={
                "Content-Type": HTML_CONTENT_TYPE,
                "Content-Length": str(len(body)),
                "Connection": "close",
            },
            body=body,
        ))

    def send_document(
        self,
        status: HTTPStatus,
        content_type: str,
        body: Union[str, bytes],
    ) -> None:
        """Send a generated (non-file) document, e.g. command output."""
        response = HTTPResponse(status=HTTPStatus(status)).set_body(body)
        response.set_header("Content-Type", content_type)
        response.set_header("Content-Length", str(len(response.body)))
        response.set_header("Connection", "close")
        self.send_response(response)

    # =========================================================================
    # STREAMED FILE RESPONSES (headers now, body via write_body)
    # =========================================================================

    def start_file(self, mime_type: str, size: int) -> None:
        """Send 200 headers for a whole-file response of size bytes."""
        self.send_head(HTTPResponse(
            status=HTTPStatus.OK,
            headers={
                "Content-Type": mime_type,
                "Content-Length": str(size),
                "Accept-Ranges": "bytes",
                "Connection": "close",
            },
        ))

    def start_range(self, mime_type: str, byte_range: ByteRange, keep_alive: bool = True) -> None:
        """
        Send 206 headers for one byte window.

        Content-Length is exactly byte_range.length(). With keep_alive the
        response advertises a persistent connection, and the caller is
        expected to read another request afterwards.
        """
        self.send_head(HTTPResponse(
            status=HTTPStatus.PARTIAL_CONTENT,
            headers={
                "Content-Type": mime_type,
                "Content-Range": byte_range.content_range(),
                "Content-Length": str(byte_range.length()),
                "Accept-Ranges": "bytes",
                "Connection": "keep-alive" if keep_alive else "close",
            },
        ))

    @property
    def body_complete(self) -> bool:
        """Did we send as many body bytes as Content-Length promised?"""
        return self.headers_sent and self.body_bytes_sent == self.content_length


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def error_page(status: HTTPStatus, message: str = "") -> str:
    """Small standalone HTML page for an error status."""
    title = f"{int(status)} {status.phrase}"
    detail = f"<p>{html.escape(message)}</p>" if message else ""
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{title}</title>"
        "</head><body>"
        f"<h1>{title}</h1>{detail}"
        "</body></html>"
    )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are ALWAYS in GMT (UTC), never local time. We don't use
    strftime because %a/%b follow the process locale.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
