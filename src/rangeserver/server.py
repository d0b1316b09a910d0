"""
=============================================================================
RANGE SERVER
=============================================================================

Ties the pieces together: configuration, the listening socket, one
thread per connection, and the shared command table.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   RangeServer   │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────────┐  ┌─────────────────┐   │
    │    │ SocketServer │    │ Thread per conn. │  │CommandDispatcher│   │
    │    │  (accept)    │    │ ConnectionHandler│  │ (shared, r/o)   │   │
    │    └──────────────┘    └────────┬─────────┘  └─────────────────┘   │
    │                                 │                                    │
    │                                 ▼                                    │
    │                 RequestParser → StaticFileHandler / command          │
    │                                 → ResponseWriter                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHARED STATE
=============================================================================

Only two objects are shared between connection threads, and neither
changes after startup:

    - ServerConfig          (frozen dataclass)
    - CommandDispatcher     (read-only command table)

Everything else (request, byte range, resolved path, open file,
response writer) is created per request on the connection's thread.

=============================================================================
"""

import logging
import threading
from typing import Optional

from .config import ServerConfig
from .core import Connection, ConnectionHandler, SocketServer
from .handlers.commands import CommandDispatcher
from .handlers.static import StaticFileHandler


logger = logging.getLogger(__name__)


class RangeServer:
    """
    Static file server with byte-range streaming and special commands.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig(base_dir="/srv/media", port=8080)
        server = RangeServer(config)
        server.run()          # Blocks until Ctrl+C / SIGTERM

    From another thread (tests):

        thread = threading.Thread(target=server.run, daemon=True)
        thread.start()
        server.wait_until_ready(5.0)
        ...
        server.shutdown()

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        dispatcher: Optional[CommandDispatcher] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults are used if omitted.
            dispatcher: Special command table. Built from config if omitted;
                        tests pass one with fake collaborators.

        Raises:
            ConfigError: The configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail fast on invalid config

        self._socket_server = SocketServer(self.config)
        self.dispatcher = dispatcher or CommandDispatcher(self.config)
        self.static_handler = StaticFileHandler(
            self.config.base_path,
            index_file=self.config.index_file,
            chunk_size=self.config.chunk_size,
        )
        self._running = False

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        """Port actually listened on (useful with port=0)."""
        return self._socket_server.bound_port

    def run(self, setup_logging: bool = True) -> None:
        """
        Start the server (blocking).

        Args:
            setup_logging: Configure the root logger from the config.
                           Embedding applications pass False.

        Raises:
            OSError: The port could not be bound.
        """
        if setup_logging:
            self._setup_logging()

        self._running = True
        logger.info(
            f"{self.config.app_name} {self.config.version} serving "
            f"{self.config.base_path} on {self.config.host}:{self.config.port}"
        )
        if self.config.playlist_url:
            logger.info(f"Playlist source: {self.config.playlist_url}")

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._running = False
            logger.info("Server stopped")

    def shutdown(self) -> None:
        """
        Stop accepting connections.

        Connections already being served finish on their own threads;
        they are daemon threads and don't keep the process alive.
        """
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is bound. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        level_name = "DEBUG" if self.config.debug else self.config.log_level.upper()
        level = getattr(logging, level_name, logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("rangeserver").setLevel(level)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """
        Start a thread for conn (called on the accept thread).

        No limit and no queue: each connection gets its own thread.
        """
        thread = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()

    def _process_connection(self, conn: Connection) -> None:
        """Serve one connection (runs on its own thread)."""
        handler = ConnectionHandler(
            conn,
            self.config,
            self.dispatcher,
            static_handler=self.static_handler,
        )
        handler.handle()


def create_server(config: Optional[ServerConfig] = None, **overrides) -> RangeServer:
    """
    Build a RangeServer from config plus keyword overrides.

    Example:
        server = create_server(base_dir="/srv/media", port=9000)
        server.run()
    """
    config = (config or ServerConfig()).with_overrides(**overrides)
    return RangeServer(config)
