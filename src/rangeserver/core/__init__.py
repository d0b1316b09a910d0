"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the HTTP layer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates the TCP listening socket, binds, listens                 │
    │  • Runs the accept() loop                                           │
    │  • Stops on SIGTERM / SIGINT                                        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one thread per accepted socket
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                       CONNECTION HANDLER                             │
    │  • Reads request heads, dispatches command vs. file                 │
    │  • Turns errors into error pages (or aborts mid-stream)             │
    │  • Keeps the connection open after a 206, closes otherwise          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Wraps the client socket: buffered reader, send, timeouts         │
    │  • Tracks ConnectionState                                           │
    │  • Graceful close() or immediate abort()                            │
    └─────────────────────────────────────────────────────────────────────┘

There is no worker pool and no admission control: every connection gets
its own thread and lives until it closes or times out.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .handler import ConnectionHandler

__all__ = [
    "SocketServer",       # TCP listener - accepts connections
    "Connection",         # Client socket wrapper - handles I/O
    "ConnectionState",    # Connection lifecycle states
    "ConnectionHandler",  # Per-connection request loop
]
