"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs on the connection's own thread and owns it from the first byte to
close(): read a request, pick command or file, answer, and decide
whether to read another request.

=============================================================================
CONNECTION PROCESSING LOOP
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ┌──► read request head (timeout: first request / keep-alive)      │
    │   │        │                                                         │
    │   │        ├── EOF / empty line ──────────────────────► close        │
    │   │        ├── timeout ───────────────────── (DEBUG) ─► close        │
    │   │        └── malformed ────────────────── 400 page ─► close        │
    │   │                                                                  │
    │   │    dispatch (socket timeout cleared while responding)            │
    │   │        ├── exact command URI ─► CommandDispatcher                │
    │   │        └── anything else ─────► StaticFileHandler                │
    │   │                                                                  │
    │   │    error before headers ─────────── error page ──► close        │
    │   │    error after headers ──────────── (WARNING) ───► abort        │
    │   │                                                                  │
    │   └── 206 sent with "Connection: keep-alive"                        │
    │                                                                      │
    │        anything else ────────────────────────────────► close        │
    │                                                                      │
    └──────────────────────────────────────────────────────────────────────┘

Nothing raised in here escapes the thread: every failure ends in a log
line and a closed socket.

=============================================================================
"""

import time
import logging
from typing import Optional

from ..access_log import AccessLog
from ..config import ServerConfig
from ..handlers.commands import CommandDispatcher
from ..handlers.static import StaticFileHandler
from ..http.errors import HTTPError, HTTPParseError, RequestTimeout, StreamingError
from ..http.request import HTTPRequest, RequestParser
from ..http.response import ResponseWriter
from ..http.status_codes import HTTPStatus
from .connection import Connection, ConnectionState


logger = logging.getLogger(__name__)


class ConnectionHandler:
    """
    Serves every request on one connection.

    Usage (on the connection's thread):
        ConnectionHandler(conn, config, dispatcher).handle()

    Args:
        connection: The accepted client connection.
        config: Shared, read-only server configuration.
        dispatcher: Shared special command table.
        static_handler: File handler; built from config when omitted.
    """

    def __init__(
        self,
        connection: Connection,
        config: ServerConfig,
        dispatcher: CommandDispatcher,
        static_handler: Optional[StaticFileHandler] = None,
    ):
        self.connection = connection
        self.config = config
        self.dispatcher = dispatcher
        self.static_handler = static_handler or StaticFileHandler(
            config.base_dir,
            index_file=config.index_file,
            chunk_size=config.chunk_size,
        )
        self.parser = RequestParser(
            max_line_length=config.max_line_length,
            max_headers=config.max_headers,
        )
        # Set when the connection must be dropped without a graceful close
        self._aborted = False

    def handle(self) -> None:
        """Process requests until the connection should close, then close it."""
        conn = self.connection
        logger.debug(f"[{conn.id}] Connection from {conn.client_ip}:{conn.client_port}")

        try:
            while True:
                request = self._read_request()
                if request is None:
                    break
                if not self._serve(request):
                    break
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
            self._aborted = True
        finally:
            if self._aborted:
                conn.abort()
            else:
                conn.close()

    # =========================================================================
    # READ
    # =========================================================================

    def _read_request(self) -> Optional[HTTPRequest]:
        """
        Read the next request head.

        Returns None when the connection should close without serving
        anything more (a 400 page may already have been sent).
        """
        conn = self.connection

        # A follow-up request gets the (usually shorter) idle timeout
        if conn.requests_handled == 0:
            conn.set_read_timeout(self.config.timeout)
        else:
            conn.set_read_timeout(self.config.keep_alive_timeout)

        conn.state = ConnectionState.AWAITING_REQUEST

        try:
            request = self.parser.parse(conn.reader, conn.address)
        except RequestTimeout:
            logger.debug(f"[{conn.id}] Socket timeout during request from {conn.client_ip}")
            return None
        except HTTPParseError as e:
            logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
            writer = ResponseWriter(conn.send, self.config.server_name)
            self._fail(writer, e.status_code, str(e))
            return None
        except OSError as e:
            # Reset by peer while we were reading
            logger.debug(f"[{conn.id}] Read failed: {e}")
            return None

        if request is None:
            return None

        conn.state = ConnectionState.PARSED
        # The request timeout bounds reading the head only; the transfer
        # runs as long as the client keeps reading
        conn.set_read_timeout(None)
        logger.debug(f"[{conn.id}] Received: {request.method} {request.uri} {request.version}")
        return request

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _serve(self, request: HTTPRequest) -> bool:
        """
        Answer one request.

        Returns:
            True to read another request on this connection.
        """
        conn = self.connection
        writer = ResponseWriter(conn.send, self.config.server_name)
        keep_alive = (
            not request.wants_close
            and conn.requests_handled + 1 < self.config.keep_alive_max
        )
        started = time.monotonic()

        try:
            conn.state = ConnectionState.DISPATCHING
            command = self.dispatcher.lookup(request.uri)

            if command is not None:
                conn.state = ConnectionState.RUNNING_COMMAND
                self.dispatcher.execute(command, writer)
            else:
                conn.state = ConnectionState.SERVING_FILE
                self.static_handler.handle(request, writer, keep_alive=keep_alive)

        except StreamingError as e:
            logger.warning(f"[{conn.id}] Streaming failure for {request.uri}: {e}")
            self._aborted = True

        except HTTPError as e:
            self._fail(writer, e.status_code, str(e))

        except OSError as e:
            logger.warning(f"[{conn.id}] I/O error serving {request.uri}: {e}")
            self._fail(writer, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error.")

        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error for {request.uri}: {e}")
            self._fail(writer, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal server error.")

        finally:
            conn.requests_handled += 1
            AccessLog.from_request(
                connection_id=conn.id,
                request=request,
                status_code=writer.status,
                bytes_sent=writer.body_bytes_sent,
                duration_ms=(time.monotonic() - started) * 1000,
            ).emit(self.config.log_format)

        if self._aborted:
            return False

        conn.state = ConnectionState.RESPONDED
        # Only a 206 ever advertises keep-alive
        return writer.keep_alive

    def _fail(self, writer: ResponseWriter, status: HTTPStatus, message: str) -> None:
        """
        Report an error to the client if the response hasn't started yet.

        Once headers are out, a second status line would corrupt the
        stream, so the connection is aborted instead.
        """
        conn = self.connection

        if writer.headers_sent:
            logger.warning(f"[{conn.id}] {int(status)} after headers were sent; aborting")
            self._aborted = True
            return

        try:
            writer.send_error(status, message)
        except OSError as e:
            logger.debug(f"[{conn.id}] Could not send {int(status)}: {e}")
            self._aborted = True
