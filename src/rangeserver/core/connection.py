"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the small API the connection
handler needs: a buffered line reader with a timeout, an all-or-nothing
send, state tracking, and a graceful close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A request head might arrive
in any split:

    recv() → "GET /movie.mp4 HT"
    recv() → "TP/1.1\r\nRange: bytes=0-\r\n\r\n"

So we never parse raw recv() results. The socket is wrapped in a
buffered binary file (socket.makefile("rb")) and the parser asks for
whole lines with readline(). The buffer takes care of stitching chunks
together, and a timeout on the socket turns a silent client into a
socket.timeout exception instead of a hung thread.

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    AWAITING_REQUEST ──► PARSED ──► DISPATCHING ──┬──► SERVING_FILE ────┐
          ▲                                        └──► RUNNING_COMMAND ─┤
          │                                                              ▼
          └──────────────── (206 + keep-alive) ◄────────────────── RESPONDED
                                                                         │
    any parse / timeout / I/O failure ─────────────────────────────► CLOSED

=============================================================================
"""

import socket
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Tuple
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Used for logging and to make the handler's progress visible when
    something goes wrong halfway through.
    """
    AWAITING_REQUEST = "awaiting_request"  # Waiting for a request head
    PARSED = "parsed"                      # Request head parsed
    DISPATCHING = "dispatching"            # Looking up command vs. file
    SERVING_FILE = "serving_file"          # Streaming a file
    RUNNING_COMMAND = "running_command"    # Executing a special command
    RESPONDED = "responded"                # Response fully written
    CLOSED = "closed"                      # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED READING                                                 │
    │     └── reader: socket.makefile("rb"), used by RequestParser         │
    │                                                                      │
    │  2. TIMEOUT MANAGEMENT                                               │
    │     └── First request: config.timeout (5 seconds)                   │
    │     └── After a 206: config.keep_alive_timeout                      │
    │     └── While responding: none (a paused player isn't cut off)      │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── ConnectionState, requests_handled                           │
    │                                                                      │
    │  4. GRACEFUL CLOSE                                                   │
    │     └── shutdown(SHUT_WR), short drain, close()                      │
    │     └── abort() skips the drain after a broken transfer             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        requests_handled: Number of requests answered on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.AWAITING_REQUEST
    requests_handled: int = 0

    timeout: Optional[float] = 5.0

    _reader: Optional[BinaryIO] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    @property
    def reader(self) -> BinaryIO:
        """
        Buffered binary reader over the socket.

        Created once and reused: any bytes it buffered past the current
        request head belong to the next (pipelined) request.
        """
        if self._reader is None:
            self._reader = self.socket.makefile("rb")
        return self._reader

    def set_read_timeout(self, seconds: Optional[float]) -> None:
        """
        Timeout for the next blocking socket calls (None = wait forever).

        A socket timeout covers sendall() as well as reads, so the handler
        clears it before writing a response and sets it again before
        waiting for the next request.
        """
        self.socket.settimeout(seconds)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> None:
        """
        Send all of data.

        Uses sendall(), which loops until every byte is handed to the
        kernel. Errors propagate: the caller decides whether an error page
        is still possible or the connection must be aborted.
        """
        self.socket.sendall(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN, we're done sending
        2. Drain whatever the client still sends (bounded by a short timeout)
        3. close(): release the file descriptor

        Closing an already closed connection is a no-op.
        """
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass  # Includes socket.timeout

        self._release()

    def abort(self):
        """
        Close immediately, without the FIN/drain dance.

        Used after a failed transfer: the client must see the connection
        drop, since the body it received is shorter than Content-Length.
        """
        if self.state == ConnectionState.CLOSED:
            return
        self._release()

    def _release(self):
        if self._reader is not None:
            try:
                self._reader.close()
            except OSError:
                pass
            self._reader = None
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")
