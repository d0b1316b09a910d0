"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads one HTTP/1.1 request head (request line + headers) from a
line-oriented byte stream and turns it into an immutable HTTPRequest.

=============================================================================
WHAT WE READ
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST HEAD                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /movies/Big%20Buck%20Bunny.mp4?t=1 HTTP/1.1\r\n  ← line 1   │
    │    ─┬─ ─────────────────┬──────────────── ────┬────                 │
    │   Method               URI (percent-encoded)  Version               │
    │                                                                      │
    │    Host: 192.168.1.20:8080\r\n                          ← headers   │
    │    Range: bytes=1048576-\r\n                                        │
    │    \r\n                                                 ← end       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

We never read a request body: this server only serves GET-style
requests, and the connection is closed (or reused after a 206) without
looking past the blank line.

=============================================================================
THREE WAYS A READ CAN END BADLY
=============================================================================

The caller handles each of these differently, so they are three
different outcomes rather than one generic error:

    1. END OF STREAM      parse() returns None
                          Client connected and hung up (or sent an empty
                          first line). Nothing to answer.

    2. TIMEOUT            RequestTimeout is raised
                          Client connected but went quiet. Closed
                          silently, logged at DEBUG.

    3. MALFORMED          HTTPParseError is raised (400)
                          Client sent something, but not HTTP. Nothing
                          has been written yet, so a 400 page can go out.

=============================================================================
HEADER QUIRKS (accepted on purpose)
=============================================================================

- Header names keep the case the client sent. Lookups are exact:
  "Range" is found, "range" is not.
- A repeated header overwrites the earlier one (last wins).
- Lines without a colon are skipped, not rejected (lenient parsing).

=============================================================================
"""

import io
import socket
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import BinaryIO, Dict, Mapping, Optional, Tuple
from urllib.parse import unquote

from .errors import HTTPParseError, RequestTimeout


@dataclass(frozen=True)
class HTTPRequest:
    """
    Represents a parsed HTTP request head.

    Created once per request by RequestParser and never modified.
    Headers are exposed through a read-only mapping.

    Attributes:
        method:         GET, HEAD, ... (not validated, we serve files to any)
        uri:            Percent-decoded request target, query included
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name → value, names as received
        client_address: (ip, port) of the peer, for logging
    """

    method: str
    uri: str
    version: str = "HTTP/1.1"
    headers: Mapping[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        # Freeze the header dict too, not just the attribute binding
        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def path(self) -> str:
        """URI without the query component ("/a.mp4?x=1" → "/a.mp4")."""
        return self.uri.split("?", 1)[0]

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Exact-case header lookup."""
        return self.headers.get(name, default)

    @property
    def wants_close(self) -> bool:
        """
        Did the client ask us to close after this response?

        HTTP/1.1 defaults to persistent, HTTP/1.0 to close unless the
        client sends "Connection: keep-alive".
        """
        connection = (self.get_header("Connection") or "").lower()
        if self.version == "HTTP/1.0":
            return connection != "keep-alive"
        return connection == "close"


class RequestParser:
    """
    Reads and parses a request head from a binary stream.

    The stream only needs readline(limit), which is what
    socket.makefile("rb") and io.BytesIO both provide:

        parser = RequestParser()
        request = parser.parse(sock.makefile("rb"), addr)

    Size limits keep a misbehaving client from making us buffer an
    unbounded request line or header block.
    """

    def __init__(self, max_line_length: int = 8192, max_headers: int = 100):
        """
        Args:
            max_line_length: Longest accepted line in bytes (without CRLF).
            max_headers: Most header lines accepted in one request.
        """
        self.max_line_length = max_line_length
        self.max_headers = max_headers

    def parse(
        self,
        stream: BinaryIO,
        client_address: Tuple[str, int] = ("", 0),
    ) -> Optional[HTTPRequest]:
        """
        Read one request head.

        Args:
            stream: Line-oriented binary input.
            client_address: Client's (ip, port) tuple for logging.

        Returns:
            The parsed request, or None if the stream ended (or the first
            line was empty) before a request arrived.

        Raises:
            RequestTimeout: The stream timed out.
            HTTPParseError: The request head is malformed.
        """
        # ─────────────────────────────────────────────────────────────────
        # REQUEST LINE
        # ─────────────────────────────────────────────────────────────────
        first_line = self._read_line(stream)
        if not first_line:
            return None

        method, uri, version = self._parse_request_line(first_line)

        # ─────────────────────────────────────────────────────────────────
        # HEADERS (until blank line or end of stream)
        # ─────────────────────────────────────────────────────────────────
        headers: Dict[str, str] = {}
        count = 0
        while True:
            line = self._read_line(stream)
            if not line:
                break

            count += 1
            if count > self.max_headers:
                raise HTTPParseError(f"Too many headers (limit {self.max_headers})")

            text = line.decode("utf-8", errors="replace")
            name, sep, value = text.partition(":")
            if not sep:
                continue  # Skip malformed headers (lenient parsing)

            name = name.strip()
            if not name:
                continue
            headers[name] = value.strip()

        return HTTPRequest(
            method=method,
            uri=uri,
            version=version,
            headers=headers,
            client_address=client_address,
        )

    def _read_line(self, stream: BinaryIO) -> Optional[bytes]:
        """
        Read one line without its terminator.

        Returns None at end of stream, b"" for a blank line.
        """
        # +2 leaves room for the CRLF of a line that is exactly at the limit
        limit = self.max_line_length + 2
        try:
            raw = stream.readline(limit)
        except (socket.timeout, TimeoutError) as e:
            raise RequestTimeout("Timed out waiting for request data") from e

        if not raw:
            return None

        if len(raw) >= limit and not raw.endswith(b"\n"):
            raise HTTPParseError(f"Line exceeds {self.max_line_length} bytes")

        return raw.rstrip(b"\r\n")

    def _parse_request_line(self, raw: bytes) -> Tuple[str, str, str]:
        """
        Split and decode "METHOD SP URI SP VERSION".

        Raises:
            HTTPParseError: Not exactly three tokens, or the URI is not
                            valid percent-encoded UTF-8.
        """
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise HTTPParseError("Request line is not valid UTF-8") from e

        parts = line.split()
        if len(parts) != 3:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, raw_uri, version = parts

        try:
            uri = unquote(raw_uri, encoding="utf-8", errors="strict")
        except UnicodeDecodeError as e:
            raise HTTPParseError(f"Invalid percent-encoding in URI: {raw_uri!r}") from e

        return method, uri, version


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
) -> Optional[HTTPRequest]:
    """
    Parse a request head held in memory.

    Wraps the bytes in a BytesIO and runs a default RequestParser over
    them. Mostly useful in tests and tools.
    """
    return RequestParser().parse(io.BytesIO(data), client_address)
