"""
=============================================================================
RANGESERVER - A MEDIA-FRIENDLY STATIC FILE SERVER
=============================================================================

A small HTTP/1.1 server, on raw sockets, for serving a folder of media
to TVs, phones and players on the local network.

=============================================================================
WHAT IT DOES
=============================================================================

    GET /movies/film.mp4                 200, whole file, streamed
    GET /movies/film.mp4                 206, just the requested window
        Range: bytes=1048576-            (players seek with this)
    GET /movies/                         serves /movies/index.html
    GET /../../etc/passwd                403, never leaves the base dir
    GET /suspend                         puts the host to sleep
    GET /channels.m3u                    remote IPTV playlist, filtered

=============================================================================
PACKAGE LAYOUT
=============================================================================

    rangeserver/
    ├── __main__.py        CLI (python -m rangeserver)
    ├── server.py          RangeServer: wiring, thread per connection
    ├── config.py          ServerConfig: file / env / CLI, validation
    ├── access_log.py      One structured line per request
    ├── core/
    │   ├── socket_server.py   Listening socket + accept loop
    │   ├── connection.py      Client socket wrapper
    │   └── handler.py         Per-connection request loop
    ├── handlers/
    │   ├── static.py          Path confinement + range streaming
    │   ├── commands.py        /suspend, /channels.m3u
    │   ├── playlist.py        M3U fetch + filter (requests)
    │   └── system.py          Host suspend
    └── http/
        ├── request.py         Request head parser
        ├── ranges.py          Range header → ByteRange
        ├── response.py        Response framing
        ├── status_codes.py    HTTPStatus
        ├── mime_types.py      Content-Type by extension
        └── errors.py          Exceptions carrying a status

=============================================================================
"""

__version__ = "1.0.0"

from .server import RangeServer, create_server
from .config import ServerConfig, ConfigError

__all__ = ["RangeServer", "create_server", "ServerConfig", "ConfigError", "__version__"]
