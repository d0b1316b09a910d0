"""
=============================================================================
LISTENER
=============================================================================

Binds the configured address, accepts media clients and wraps each
accepted socket in a Connection for the server's per-connection thread.
It knows nothing about HTTP.

    bind/listen ──► ready ──► accept (1 s poll) ──► Connection ──► callback
                                  ▲                                    │
                                  └──────────── until shutdown() ──────┘

- SO_REUSEADDR so a restart doesn't trip over sockets in TIME_WAIT.
- TCP_NODELAY so a 206 head isn't held back waiting for body bytes.
- SIGINT/SIGTERM stop the loop, but only when started on the main
  thread; tests and embedders call shutdown() themselves.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

# How often accept() gives up so the loop can see shutdown()
ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    Accepts TCP connections until shutdown().

    Usage:
        server = SocketServer(config)
        server.start(on_connection)  # Blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        # Set once bound_port is the real port
        self._ready = threading.Event()
        self._previous_handlers: dict = {}

    @property
    def bound_port(self) -> int:
        """Port actually listened on; differs from config.port for port 0."""
        if self._socket is not None:
            try:
                return self._socket.getsockname()[1]
            except OSError:
                pass
        return self.config.port

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, on_connection: Callable[[Connection], None]) -> None:
        """
        Listen and hand every accepted Connection to on_connection.

        Blocks until shutdown(). on_connection must not block; the server
        gives each connection its own thread.

        Raises:
            OSError: The address could not be bound.
        """
        self._socket = self._listen(self.config.host, self.config.port)
        self._running = True
        self._install_signal_handlers()

        logger.info(f"Server listening on {self.config.host}:{self.bound_port}")
        self._ready.set()

        try:
            while self._running:
                accepted = self._accept()
                if accepted is None:
                    continue
                on_connection(Connection(
                    socket=accepted[0],
                    address=accepted[1],
                    timeout=self.config.timeout,
                ))
        finally:
            self._close()

    def shutdown(self) -> None:
        """Stop the accept loop within one poll interval. Idempotent."""
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until the socket is listening. Returns False on timeout."""
        return self._ready.wait(timeout)

    # =========================================================================
    # SOCKET
    # =========================================================================

    def _listen(self, host: str, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(ACCEPT_POLL_INTERVAL)

        try:
            sock.bind((host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Cannot listen on {host}:{port}: {e}")
            sock.close()
            raise

        return sock

    def _accept(self) -> Optional[Tuple[socket.socket, Tuple[str, int]]]:
        """One accept() attempt; None on poll timeout or after shutdown."""
        try:
            client_socket, client_address = self._socket.accept()
        except socket.timeout:
            return None
        except OSError as e:
            if self._running:
                logger.error(f"Accept error: {e}")
            self._running = False
            return None

        logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
        return client_socket, client_address

    def _close(self) -> None:
        self._restore_signal_handlers()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._running = False
        self._ready.clear()
        logger.info("Listener stopped")

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _install_signal_handlers(self) -> None:
        # signal.signal() raises ValueError off the main thread
        if threading.current_thread() is not threading.main_thread():
            return

        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._previous_handlers[sig] = signal.signal(sig, on_signal)

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()
