"""
=============================================================================
SPECIAL COMMANDS
=============================================================================

A few URIs are not files but actions:

    ┌───────────────────┬────────────────────┬──────────────────────────────┐
    │ URI               │ Command            │ Response                     │
    ├───────────────────┼────────────────────┼──────────────────────────────┤
    │ /suspend          │ Command.SUSPEND    │ 200 HTML, then host sleeps   │
    │ /channels.m3u     │ Command.PLAYLIST   │ 200 filtered M3U, or 500     │
    └───────────────────┴────────────────────┴──────────────────────────────┘

Matching is an exact string comparison on the decoded URI, and happens
BEFORE file serving: a file called "suspend" in the base directory can
never shadow the command. "/suspend?now=1" or "/Suspend" are not
commands and fall through to file serving.

The table is built once, read-only, and shared by all connections.

=============================================================================
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from ..config import ServerConfig
from ..http.response import HTML_CONTENT_TYPE, ResponseWriter
from ..http.status_codes import HTTPStatus
from .playlist import PlaylistFetcher
from .system import SystemController


logger = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPE = "audio/x-mpegurl; charset=utf-8"

SUSPEND_PAGE = (
    "<!DOCTYPE html><html><head><title>Success</title></head>"
    "<body><h1>PC is going to sleep...</h1></body></html>"
)


class Command(Enum):
    """Actions reachable through a fixed URI."""
    SUSPEND = "suspend"
    PLAYLIST = "playlist"


COMMANDS: Mapping[str, Command] = MappingProxyType({
    "/suspend": Command.SUSPEND,
    "/channels.m3u": Command.PLAYLIST,
})


class CommandDispatcher:
    """
    Looks up and runs special commands.

    Usage:
        dispatcher = CommandDispatcher(config)
        command = dispatcher.lookup(request.uri)
        if command is not None:
            dispatcher.execute(command, writer)

    Args:
        config: Server configuration (playlist URL, groups, timeout).
        system: Object with suspend() -> bool. Defaults to the real
                SystemController.
        playlist_fetcher: Callable url -> Optional[str]. Defaults to a
                          PlaylistFetcher for config.playlist_groups.
    """

    def __init__(
        self,
        config: ServerConfig,
        system: Optional[SystemController] = None,
        playlist_fetcher: Optional[Callable[[Optional[str]], Optional[str]]] = None,
    ):
        self.config = config
        self.system = system or SystemController()
        self.playlist_fetcher = playlist_fetcher or PlaylistFetcher(
            groups=config.playlist_groups,
            timeout=config.playlist_timeout,
        )
        self._handlers = MappingProxyType({
            Command.SUSPEND: self._suspend,
            Command.PLAYLIST: self._playlist,
        })

    def lookup(self, uri: str) -> Optional[Command]:
        """Command registered for exactly this URI, or None."""
        return COMMANDS.get(uri)

    def execute(self, command: Command, writer: ResponseWriter) -> HTTPStatus:
        """
        Run command and write its response.

        Returns:
            The status that was sent.
        """
        logger.debug(f"Received special command: {command.name}")
        self._handlers[command](writer)
        return writer.status

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def _suspend(self, writer: ResponseWriter) -> None:
        try:
            # Answer first: once the host sleeps, the client would get nothing
            writer.send_document(HTTPStatus.OK, HTML_CONTENT_TYPE, SUSPEND_PAGE)
            started = self.system.suspend()
        except OSError as e:
            logger.error(f"Error handling /suspend command: {e}")
            started = False

        if not started:
            logger.error("Suspend command did not start")
            if not writer.headers_sent:
                writer.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Error processing command.")

    def _playlist(self, writer: ResponseWriter) -> None:
        playlist = self.playlist_fetcher(self.config.playlist_url)

        if not playlist:
            writer.send_error(HTTPStatus.INTERNAL_SERVER_ERROR, "Failed to process M3U playlist.")
            return

        writer.send_document(HTTPStatus.OK, PLAYLIST_CONTENT_TYPE, playlist)
