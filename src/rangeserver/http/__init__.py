"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Everything that knows about HTTP wire format, and nothing that knows
about sockets or the filesystem:

    request.py       Request head parsing (RequestParser, HTTPRequest)
    ranges.py        Range header parsing/validation (ByteRange)
    response.py      Response framing (HTTPResponse, ResponseWriter)
    status_codes.py  HTTPStatus enum with reason phrases
    mime_types.py    Extension → Content-Type table
    errors.py        Exceptions carrying an HTTP status

=============================================================================
"""

from .errors import (
    HTTPError,
    HTTPParseError,
    RequestTimeout,
    RangeSyntaxError,
    RangeNotSatisfiable,
    ResponseStateError,
    StreamingError,
)
from .request import HTTPRequest, RequestParser, parse_request
from .ranges import ByteRange, parse_range
from .response import HTTPResponse, ResponseWriter, error_page, format_http_date
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, DEFAULT_MIME_TYPE

__all__ = [
    # Errors
    "HTTPError",
    "HTTPParseError",
    "RequestTimeout",
    "RangeSyntaxError",
    "RangeNotSatisfiable",
    "ResponseStateError",
    "StreamingError",

    # Requests
    "HTTPRequest",
    "RequestParser",
    "parse_request",

    # Byte ranges
    "ByteRange",
    "parse_range",

    # Responses
    "HTTPResponse",
    "ResponseWriter",
    "error_page",
    "format_http_date",

    # Status codes
    "HTTPStatus",

    # MIME types
    "get_mime_type",
    "DEFAULT_MIME_TYPE",
]
