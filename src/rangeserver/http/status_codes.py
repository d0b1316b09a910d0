"""
=============================================================================
HTTP STATUS CODES (RFC 7231 / RFC 7233)
=============================================================================

The status codes this server actually emits, with their reason phrases.

=============================================================================
STATUS CODES USED BY RANGESERVER
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │                      STATUS CODES WE SEND                          │
    ├────────┬───────────────────────────────────────────────────────────┤
    │  2xx   │ SUCCESS                                                   │
    │        │                                                           │
    │        │ 200 OK              - Whole file, or command output       │
    │        │ 206 Partial Content - One byte window of a file           │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ CLIENT ERROR                                              │
    │        │                                                           │
    │        │ 400 Bad Request     - Bad request line or Range syntax    │
    │        │ 403 Forbidden       - Path escapes the base directory     │
    │        │ 404 Not Found       - Missing or unreadable file          │
    │        │ 416 Range Not Satisfiable - Range outside the file        │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ SERVER ERROR                                              │
    │        │                                                           │
    │        │ 500 Internal Error  - Command failed, unexpected I/O     │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
400 VS 416
=============================================================================

Both are "your Range header is wrong", but for different reasons:

    Range: bytes=abc-def     → 400  (we can't even read the numbers)
    Range: bytes=500-100     → 416  (numbers parse, window is impossible)
    Range: bytes=0-99999999  → 416  (window runs past the end of file)

Keeping them apart lets a media player tell a bug in its own request
building from a file that simply got shorter.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so a status compares equal to its number:

        >>> HTTPStatus.PARTIAL_CONTENT == 206
        True
        >>> HTTPStatus.PARTIAL_CONTENT.phrase
        'Partial Content'
    """

    # 2xx SUCCESS
    OK = 200
    PARTIAL_CONTENT = 206

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    RANGE_NOT_SATISFIABLE = 416

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 206 Partial Content
                     ─── ───────────────
                      │         │
                      │         └── Reason phrase
                      └──────────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        """Check if this is a 2xx (success) status code."""
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        """Check if this is a 4xx (client error) status code."""
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        """Check if this is a 5xx (server error) status code."""
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        """Check if this is an error status code (4xx or 5xx)."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.PARTIAL_CONTENT: "Partial Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Range Not Satisfiable",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}
