"""
pytest configuration and fixtures.
"""

import io
import socket
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rangeserver import RangeServer, ServerConfig
from rangeserver.handlers.commands import CommandDispatcher


# 1024 bytes where every byte value is predictable from its offset
VIDEO_BYTES = bytes(range(256)) * 4

PLAYLIST_TEXT = (
    "#EXTM3U\n"
    '#EXTINF:-1 group-title="NFL",Game One\n'
    "http://example.com/nfl1.ts\n"
)


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    """
    Base directory with a few files, plus a secret file OUTSIDE it.

        tmp_path/
        ├── secret.txt          (must never be served)
        └── media/              (base_dir)
            ├── index.html
            ├── video.mp4       1024 bytes
            ├── empty.bin       0 bytes
            ├── suspend         file shadowed by the /suspend command
            ├── music/
            │   ├── index.html
            │   └── Song One.mp3
            └── docs/           no index.html
    """
    base = tmp_path / "media"
    base.mkdir()
    (base / "index.html").write_text("<h1>home</h1>", encoding="utf-8")
    (base / "video.mp4").write_bytes(VIDEO_BYTES)
    (base / "empty.bin").write_bytes(b"")
    (base / "suspend").write_text("not a command", encoding="utf-8")

    music = base / "music"
    music.mkdir()
    (music / "index.html").write_text("<h1>music</h1>", encoding="utf-8")
    (music / "Song One.mp3").write_bytes(b"ID3" + b"\x00" * 61)

    (base / "docs").mkdir()

    (tmp_path / "secret.txt").write_text("top secret", encoding="utf-8")
    return base


@pytest.fixture
def config(media_dir: Path) -> ServerConfig:
    """Test server configuration serving media_dir."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        base_dir=str(media_dir),
        playlist_url="http://playlists.invalid/all.m3u",
        timeout=2.0,
        keep_alive_timeout=2.0,
        log_level="WARNING",
    )


class FakeSystemController:
    """Records suspend() calls instead of putting the machine to sleep."""

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = 0

    def suspend(self) -> bool:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakePlaylistFetcher:
    """Returns a canned playlist and remembers the URLs it was asked for."""

    def __init__(self, result: Optional[str] = PLAYLIST_TEXT):
        self.result = result
        self.urls: List[Optional[str]] = []

    def __call__(self, url: Optional[str]) -> Optional[str]:
        self.urls.append(url)
        return self.result


@pytest.fixture
def fake_system() -> FakeSystemController:
    return FakeSystemController()


@pytest.fixture
def fake_fetcher() -> FakePlaylistFetcher:
    return FakePlaylistFetcher()


@pytest.fixture
def dispatcher(config, fake_system, fake_fetcher) -> CommandDispatcher:
    """Command table wired to fakes."""
    return CommandDispatcher(config, system=fake_system, playlist_fetcher=fake_fetcher)


# =============================================================================
# RESPONSE PARSING
# =============================================================================

@dataclass
class ParsedResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


def read_response(reader) -> Optional[ParsedResponse]:
    """Read one response (head + Content-Length body) from a binary reader."""
    status_line = reader.readline()
    if not status_line:
        return None

    status = int(status_line.split()[1])
    headers = {}
    while True:
        line = reader.readline().decode("utf-8").rstrip("\r\n")
        if not line:
            break
        name, _, value = line.partition(":")
        headers[name.strip()] = value.strip()

    body = reader.read(int(headers.get("Content-Length", "0")))
    return ParsedResponse(status, headers, body)


def parse_response(raw: bytes) -> ParsedResponse:
    """Parse the first response in raw."""
    response = read_response(io.BytesIO(raw))
    assert response is not None, "no response received"
    return response


# =============================================================================
# RUNNING SERVER
# =============================================================================

class ServerHarness:
    """Runs a RangeServer in a background thread."""

    def __init__(self, server: RangeServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.port

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"setup_logging": False},
            daemon=True,
        )
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def connect(self) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=5.0)

    def send_raw(self, data: bytes) -> bytes:
        """Send data, then read until the server closes the connection."""
        with self.connect() as sock:
            sock.sendall(data)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)

    def get(self, uri: str, headers: Optional[Dict[str, str]] = None) -> ParsedResponse:
        """GET uri on a fresh connection that asks to be closed afterwards."""
        lines = [f"GET {uri} HTTP/1.1", "Host: localhost", "Connection: close"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        raw = ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")
        return parse_response(self.send_raw(raw))


@pytest.fixture
def running_server(config, dispatcher) -> Generator[ServerHarness, None, None]:
    """A live server on a random port, with fake command collaborators."""
    harness = ServerHarness(RangeServer(config, dispatcher=dispatcher))
    harness.start()

    yield harness

    harness.stop()
