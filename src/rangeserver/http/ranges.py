"""
=============================================================================
BYTE RANGES (RFC 7233, single range only)
=============================================================================

Parses and validates the Range request header so a media player can
seek inside a large file without downloading all of it.

=============================================================================
THE THREE FORMS WE ACCEPT
=============================================================================

For a 1000-byte file (bytes 0..999):

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Header              start   end      Content-Range         length  │
    ├─────────────────────────────────────────────────────────────────────┤
    │  bytes=200-          200     (open)   bytes 200-999/1000      800   │
    │  bytes=-100          900     999      bytes 900-999/1000      100   │
    │  bytes=0-0           0       0        bytes 0-0/1000            1   │
    │  bytes=100-199       100     199      bytes 100-199/1000      100   │
    └─────────────────────────────────────────────────────────────────────┘

Both ends are INCLUSIVE. That's where most off-by-one bugs hide:

    length = end - start + 1          (closed range)
    length = total_length - start     (open-ended range)

=============================================================================
SYNTAX ERROR (400) VS UNSATISFIABLE (416)
=============================================================================

    bytes=abc-def      400  tokens aren't numbers
    bytes=0-10,20-30   400  multi-range is not supported
    items=0-10         400  unknown unit
    bytes=-            400  neither side present

    bytes=500-100      416  end before start
    bytes=-5000        416  suffix longer than the file (start < 0)
    bytes=1000-        416  start at/after end of file
    bytes=0-1000       416  end past the last byte
    bytes=99999...-    416  offset with thousands of digits

Note that we reject an end past EOF instead of clamping it. Clients
that send "bytes=0-" style requests (all the players we care about)
never hit this.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Optional

from .errors import RangeNotSatisfiable, RangeSyntaxError


# "bytes=" then an optional start and an optional end, digits only.
# re.ASCII keeps \d from matching things like Arabic-Indic digits.
RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$", re.ASCII)


@dataclass(frozen=True)
class ByteRange:
    """
    One contiguous byte window of a file.

    Attributes:
        start:        First byte offset (may be negative for an oversized
                      suffix request; is_valid() rejects that).
        end:          Last byte offset, inclusive. None means open-ended
                      ("through end of file").
        total_length: File size in bytes when the range was computed.
    """

    start: int
    end: Optional[int]
    total_length: int

    @property
    def is_open_ended(self) -> bool:
        return self.end is None

    @property
    def last_byte(self) -> int:
        """Inclusive offset of the last byte that will be sent."""
        if self.end is None:
            return self.total_length - 1
        return self.end

    def length(self) -> int:
        """Number of bytes in the window (the Content-Length of a 206)."""
        if self.end is None:
            return self.total_length - self.start
        return self.end - self.start + 1

    def is_valid(self) -> bool:
        """
        Is this window inside the file?

        Start must be within the file; a closed range must also have
        start <= end < total_length.
        """
        if self.start < 0 or self.start >= self.total_length:
            return False
        if self.end is not None and (self.end < self.start or self.end >= self.total_length):
            return False
        return True

    def content_range(self) -> str:
        """Value for the Content-Range response header."""
        return f"bytes {self.start}-{self.last_byte}/{self.total_length}"


def parse_range(header_value: str, total_length: int) -> ByteRange:
    """
    Turn a Range header value into a validated ByteRange.

    Args:
        header_value: Raw header value, e.g. "bytes=0-1023".
        total_length: Current size of the file being served.

    Returns:
        A ByteRange for which is_valid() holds.

    Raises:
        RangeSyntaxError: The header doesn't match bytes=N-, bytes=-N
                          or bytes=N-M (400).
        RangeNotSatisfiable: The numbers parse but the window is outside
                             the file (416).
    """
    value = header_value.strip()

    # Multi-range ("bytes=0-1,5-6") is not supported; the whole header is
    # treated as one malformed spec.
    if "," in value:
        raise RangeSyntaxError(f"Multiple ranges are not supported: {value!r}")

    match = RANGE_PATTERN.match(value)
    if not match:
        raise RangeSyntaxError(f"Invalid Range header: {value!r}")

    first, last = match.groups()

    if first and last:
        # bytes=N-M
        byte_range = ByteRange(_offset(first, value), _offset(last, value), total_length)
    elif first:
        # bytes=N-
        byte_range = ByteRange(_offset(first, value), None, total_length)
    elif last:
        # bytes=-N → last N bytes
        suffix = _offset(last, value)
        byte_range = ByteRange(total_length - suffix, total_length - 1, total_length)
    else:
        raise RangeSyntaxError("Range has neither start nor end")

    if not byte_range.is_valid():
        raise RangeNotSatisfiable(
            f"Range {value!r} not satisfiable for {total_length} bytes"
        )

    return byte_range


def _offset(digits: str, value: str) -> int:
    """
    Convert a run of digits to an offset.

    int() refuses digit strings past sys.get_int_max_str_digits() (4300
    by default). A number that long is far beyond any file size, so it is
    unsatisfiable rather than malformed.
    """
    try:
        return int(digits)
    except ValueError as e:
        raise RangeNotSatisfiable(f"Range offset too large in {value[:40]!r}...") from e
