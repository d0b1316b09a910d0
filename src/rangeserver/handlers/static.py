"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files from the base directory, whole (200) or one byte window at
a time (206), without ever reading a whole file into memory.

=============================================================================
SECURITY: PATH TRAVERSAL ATTACK
=============================================================================

    ATTACK ATTEMPT:
    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../etc/passwd HTTP/1.1                                     │
    │  GET /%2e%2e/%2e%2e/etc/passwd HTTP/1.1   (decoded by the parser)   │
    │  GET /music/link-to-root/etc/passwd        (symlink inside base)     │
    │                                                                      │
    │  Our protection (resolve_path):                                     │
    │  1. Join the URI path onto the resolved base directory              │
    │  2. Resolve the result (normalizes .. AND follows symlinks)         │
    │  3. Check the result is the base or below it                        │
    │  4. If not → ResolvedPath.rejected() → 403 Forbidden                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    PYTHON PROTECTION:

        full_path = (base_dir / user_input).resolve()
        full_path.relative_to(base_dir)  # Raises ValueError if outside!

This is the ONLY traversal defense, so it runs after percent-decoding
and again after a directory was swapped for its index file (index.html
itself could be a symlink pointing out of the tree).

=============================================================================
STREAMING, NOT READING
=============================================================================

A two hour movie is several GB. We open the file, seek, and copy a
bounded window in small chunks:

    ┌──────────── file ────────────────────────────────────────────┐
    │                 ▲ start                   ▲ start + count     │
    │                 ├──8K──┼──8K──┼──8K──┼─3K─┤                   │
    │                 └──────── sent ───────────┘                   │
    └───────────────────────────────────────────────────────────────┘

The loop stops at count, never at "whatever the buffer held", so the
body always matches the Content-Length we announced, or is shorter
if the file shrank under us. Shorter is reported as a StreamingError and
the connection is aborted; there is no way to fix a half-sent body.

The file size is taken ONCE, from fstat() on the open handle, and that
single number drives range validation, the headers and the copy loop.

=============================================================================
"""

import os
import stat
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union

from ..http.errors import StreamingError
from ..http.mime_types import get_mime_type
from ..http.ranges import parse_range
from ..http.request import HTTPRequest
from ..http.response import ResponseWriter
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)

DEFAULT_INDEX_FILE = "index.html"
DEFAULT_CHUNK_SIZE = 8192


# =============================================================================
# PATH RESOLUTION
# =============================================================================

@dataclass(frozen=True)
class ResolvedPath:
    """
    A filesystem path inside the base directory, or the "rejected" marker.

    Only resolve_path() builds these, so holding a non-rejected
    ResolvedPath means the containment check already passed.
    """

    path: Optional[Path]

    @classmethod
    def rejected(cls) -> "ResolvedPath":
        return cls(path=None)

    @property
    def is_rejected(self) -> bool:
        return self.path is None


def _contained(path: Path, base: Path) -> bool:
    try:
        path.relative_to(base)
    except ValueError:
        return False
    return True


def _is_dir(path: Path) -> bool:
    # Path.is_dir() raises PermissionError under an unreadable directory
    # on older Pythons; open() then reports the file as unreadable (404)
    try:
        return path.is_dir()
    except OSError:
        return False


def resolve_path(
    uri: str,
    base_dir: Union[str, Path],
    index_file: str = DEFAULT_INDEX_FILE,
) -> ResolvedPath:
    """
    Map a request URI to a path confined to base_dir.

    Args:
        uri: Percent-decoded request URI, query allowed.
        base_dir: Directory everything is served from.
        index_file: File served for directory requests.

    Returns:
        ResolvedPath with the file to serve, or ResolvedPath.rejected()
        when the URI would escape base_dir.

    No existence check is done for files; that happens when the file is
    opened for serving.
    """
    # Query string is not part of the filesystem path
    path_part = uri.split("?", 1)[0]

    # open() would choke on NUL later; treat it as hostile right away
    if "\x00" in path_part:
        return ResolvedPath.rejected()

    base = Path(base_dir).resolve()

    # Leading slashes would make the join absolute: Path("/srv") / "/etc"
    # is "/etc"
    relative = path_part.lstrip("/")

    try:
        candidate = (base / relative).resolve()
    except (OSError, RuntimeError, ValueError):
        # Symlink loops, names the OS refuses
        return ResolvedPath.rejected()

    if not _contained(candidate, base):
        return ResolvedPath.rejected()

    if _is_dir(candidate):
        candidate = (candidate / index_file).resolve()
        if not _contained(candidate, base):
            return ResolvedPath.rejected()

    return ResolvedPath(candidate)


# =============================================================================
# FILE STREAMING
# =============================================================================

def stream_file(
    fileobj: BinaryIO,
    write: Callable[[bytes], None],
    start: int,
    count: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Copy count bytes starting at start from fileobj to write().

    Reads are capped at the bytes still owed, so the loop can never write
    more than count bytes, whatever chunk_size is.

    Args:
        fileobj: Open, seekable binary file.
        write: Sink for each chunk (raises OSError on failure).
        start: Byte offset to begin at.
        count: Exact number of bytes to send.
        chunk_size: Largest single read/write.

    Returns:
        Bytes actually written; less than count only if EOF came first.

    Raises:
        OSError: From reading the file or from write().
    """
    fileobj.seek(start)

    sent = 0
    while sent < count:
        chunk = fileobj.read(min(chunk_size, count - sent))
        if not chunk:
            break  # EOF: file shrank after we measured it
        write(chunk)
        sent += len(chunk)

    return sent


# =============================================================================
# HANDLER
# =============================================================================

class StaticFileHandler:
    """
    Serves one file request: 403, 404, 200 or 206.

    =========================================================================
    FLOW
    =========================================================================

        GET /music/song.mp3   Range: bytes=1000-

        1. resolve_path()          → rejected? 403
        2. open() + fstat()        → missing/unreadable/not a file? 404
        3. No Range header         → 200, whole file
        4. Range header            → parse_range() against the fstat size
                                     400 / 416 raised as HTTPError
                                     206, one window
        5. stream_file()           → short or failed? StreamingError

    =========================================================================

    Range errors are raised, not answered here. The connection handler
    owns the "error page or abort?" decision, since only it knows
    whether headers already went out.
    """

    def __init__(
        self,
        base_dir: Union[str, Path],
        index_file: str = DEFAULT_INDEX_FILE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.base_dir = Path(base_dir).resolve()
        self.index_file = index_file
        self.chunk_size = chunk_size

    def handle(self, request: HTTPRequest, writer: ResponseWriter, keep_alive: bool = False) -> None:
        """
        Serve request through writer.

        Args:
            request: The parsed request.
            writer: Response writer for this request (nothing sent yet).
            keep_alive: Whether a 206 may advertise a persistent connection.

        Raises:
            RangeSyntaxError, RangeNotSatisfiable: Bad Range header.
            StreamingError: Transfer failed or came up short after the
                            headers were sent.
        """
        resolved = resolve_path(request.uri, self.base_dir, self.index_file)

        if resolved.is_rejected:
            logger.warning(f"Path traversal attempt from {request.client_address[0]}: {request.uri!r}")
            writer.send_error(HTTPStatus.FORBIDDEN, "Access to this resource is forbidden.")
            return

        path = resolved.path
        try:
            fileobj = open(path, "rb")
        except OSError as e:
            # FileNotFoundError, IsADirectoryError, PermissionError, ...
            logger.debug(f"Cannot open {path}: {e}")
            writer.send_error(HTTPStatus.NOT_FOUND, "The requested file was not found.")
            return

        with fileobj:
            info = os.fstat(fileobj.fileno())
            if not stat.S_ISREG(info.st_mode):
                writer.send_error(HTTPStatus.NOT_FOUND, "The requested file was not found.")
                return

            # Single snapshot of the size, used for everything below
            size = info.st_size
            mime_type = get_mime_type(path.name)

            range_header = request.get_header("Range")
            if range_header is None:
                start, count = 0, size
                writer.start_file(mime_type, size)
            else:
                byte_range = parse_range(range_header, size)
                start, count = byte_range.start, byte_range.length()
                writer.start_range(mime_type, byte_range, keep_alive=keep_alive)

            if request.method == "HEAD":
                return

            self._transfer(fileobj, path, writer, start, count)

    def _transfer(
        self,
        fileobj: BinaryIO,
        path: Path,
        writer: ResponseWriter,
        start: int,
        count: int,
    ) -> None:
        try:
            sent = stream_file(fileobj, writer.write_body, start, count, self.chunk_size)
        except OSError as e:
            raise StreamingError(
                f"Transfer of {path.name} failed after {writer.body_bytes_sent} "
                f"of {count} bytes: {e}"
            ) from e

        if sent < count:
            raise StreamingError(
                f"{path.name} shrank during transfer: sent {sent} of {count} bytes"
            )
