"""
Exceptions shared by the HTTP layer.

Every error that maps to an HTTP response carries the status code to
send, so the connection handler can turn it into an error page without
a big if/elif ladder:

    try:
        ...
    except HTTPError as e:
        writer.send_error(e.status_code, str(e))
"""

from typing import Optional

from .status_codes import HTTPStatus


class HTTPError(Exception):
    """
    Base class for errors that become an HTTP error response.

    Interview insight: Custom exceptions with metadata (like status_code)
    make error handling cleaner than passing tuples or using generic exceptions.
    """

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[HTTPStatus] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = HTTPStatus(status_code)


class HTTPParseError(HTTPError):
    """Request line or header block is malformed (400)."""

    status_code = HTTPStatus.BAD_REQUEST


class RequestTimeout(Exception):
    """
    The client connected but did not deliver a request in time.

    Deliberately NOT an HTTPError: a timed-out connection is closed
    without sending anything back.
    """


class RangeSyntaxError(HTTPError):
    """Range header can't be parsed (400)."""

    status_code = HTTPStatus.BAD_REQUEST


class RangeNotSatisfiable(HTTPError):
    """Range header parses, but the window is outside the file (416)."""

    status_code = HTTPStatus.RANGE_NOT_SATISFIABLE


class ResponseStateError(RuntimeError):
    """
    A response was framed out of order.

    Raised when headers would be sent twice for one request, or body
    bytes would be written before any headers.
    """


class StreamingError(OSError):
    """File transfer failed after the headers were already on the wire."""
