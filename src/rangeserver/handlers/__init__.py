"""
=============================================================================
HANDLERS MODULE
=============================================================================

What the server does with a parsed request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Module        │ Responsibility                                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ static.py     │ Files from the base directory: path confinement,   │
    │               │ 200 whole-file and 206 byte-range streaming        │
    ├─────────────────────────────────────────────────────────────────────┤
    │ commands.py   │ Fixed URI → action table (/suspend, /channels.m3u) │
    ├─────────────────────────────────────────────────────────────────────┤
    │ playlist.py   │ Remote extended M3U fetch + group filter           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ system.py     │ Host suspend via the platform's command            │
    └─────────────────────────────────────────────────────────────────────┘

Commands are checked first; everything that isn't an exact command URI
is a file request.

=============================================================================
"""

from .static import StaticFileHandler, ResolvedPath, resolve_path, stream_file
from .commands import Command, CommandDispatcher, COMMANDS
from .playlist import PlaylistFetcher, filter_playlist
from .system import SystemController

__all__ = [
    "StaticFileHandler",
    "ResolvedPath",
    "resolve_path",
    "stream_file",
    "Command",
    "CommandDispatcher",
    "COMMANDS",
    "PlaylistFetcher",
    "filter_playlist",
    "SystemController",
]
