"""
Unit tests for static file serving: path confinement, streaming, 200/206.
"""

import io
import os
from pathlib import Path

import pytest

from rangeserver.handlers.static import (
    ResolvedPath,
    StaticFileHandler,
    resolve_path,
    stream_file,
)
from rangeserver.http.errors import RangeNotSatisfiable, RangeSyntaxError, StreamingError
from rangeserver.http.mime_types import DEFAULT_MIME_TYPE, get_mime_type
from rangeserver.http.request import HTTPRequest
from rangeserver.http.response import ResponseWriter

from conftest import VIDEO_BYTES, parse_response


SIXTEEN = bytes(range(0x41, 0x51))  # b"ABCDEFGHIJKLMNOP"


class Sink:
    def __init__(self):
        self.data = b""

    def __call__(self, data: bytes):
        self.data += data


class FailingSink:
    """Accepts the header block, then fails like a disconnected client."""

    def __init__(self, fail_after: int = 1):
        self.calls = 0
        self.fail_after = fail_after

    def __call__(self, data: bytes):
        self.calls += 1
        if self.calls > self.fail_after:
            raise ConnectionResetError("reset by peer")


def get(uri: str, **headers) -> HTTPRequest:
    return HTTPRequest(method="GET", uri=uri, headers=headers, client_address=("127.0.0.1", 1))


def deny_access(path):
    raise PermissionError(13, "Permission denied", str(path))


class TestResolvePath:
    """Tests for resolve_path()."""

    def test_plain_file(self, media_dir):
        resolved = resolve_path("/video.mp4", media_dir)

        assert not resolved.is_rejected
        assert resolved.path == (media_dir / "video.mp4").resolve()

    def test_root_maps_to_index(self, media_dir):
        assert resolve_path("/", media_dir).path == (media_dir / "index.html").resolve()

    def test_directory_maps_to_index(self, media_dir):
        resolved = resolve_path("/music/", media_dir)
        assert resolved.path == (media_dir / "music" / "index.html").resolve()

        # No trailing slash needed
        assert resolve_path("/music", media_dir).path == resolved.path

    def test_query_is_stripped(self, media_dir):
        resolved = resolve_path("/video.mp4?t=30&x=../../", media_dir)
        assert resolved.path == (media_dir / "video.mp4").resolve()

    def test_missing_file_is_not_rejected(self, media_dir):
        """Test that existence is checked later, when the file is opened."""
        resolved = resolve_path("/nope.mp4", media_dir)

        assert not resolved.is_rejected
        assert resolved.path.name == "nope.mp4"

    @pytest.mark.parametrize("uri", [
        "/../secret.txt",
        "/../../etc/passwd",
        "/music/../../secret.txt",
        "/..",
        "/video.mp4\x00.html",
    ])
    def test_traversal_is_rejected(self, media_dir, uri):
        assert resolve_path(uri, media_dir).is_rejected

    def test_dotdot_inside_base_is_allowed(self, media_dir):
        """Test that .. segments are fine while they stay inside the base."""
        resolved = resolve_path("/music/../video.mp4", media_dir)
        assert resolved.path == (media_dir / "video.mp4").resolve()

    def test_double_leading_slash_stays_inside(self, media_dir):
        resolved = resolve_path("//video.mp4", media_dir)
        assert resolved.path == (media_dir / "video.mp4").resolve()

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="needs symlinks")
    def test_symlink_escaping_base_is_rejected(self, media_dir, tmp_path):
        link = media_dir / "outside"
        try:
            link.symlink_to(tmp_path / "secret.txt")
        except OSError:
            pytest.skip("cannot create symlinks here")

        assert resolve_path("/outside", media_dir).is_rejected

    def test_rejected_marker(self):
        assert ResolvedPath.rejected().is_rejected
        assert ResolvedPath.rejected().path is None

    def test_unreadable_parent_is_left_to_open(self, media_dir, monkeypatch):
        """Test that a directory check refused by the OS doesn't escape as an error."""
        expected = (media_dir / "locked" / "movie.mp4").resolve()
        monkeypatch.setattr(Path, "is_dir", deny_access)

        resolved = resolve_path("/locked/movie.mp4", media_dir)

        assert not resolved.is_rejected
        assert resolved.path == expected


class TestStreamFile:
    """Tests for stream_file()."""

    def test_window(self):
        sink = Sink()
        sent = stream_file(io.BytesIO(VIDEO_BYTES), sink, 100, 50, chunk_size=7)

        assert sent == 50
        assert sink.data == VIDEO_BYTES[100:150]

    def test_never_exceeds_count(self):
        """Test that the last read is trimmed to the bytes still owed."""
        sink = Sink()
        stream_file(io.BytesIO(VIDEO_BYTES), sink, 0, 10, chunk_size=8192)
        assert sink.data == VIDEO_BYTES[:10]

    def test_short_file_returns_fewer_bytes(self):
        """Test that EOF before count ends the copy early."""
        sink = Sink()
        sent = stream_file(io.BytesIO(b"abc"), sink, 0, 10)

        assert sent == 3
        assert sink.data == b"abc"

    def test_write_errors_propagate(self):
        with pytest.raises(OSError):
            stream_file(io.BytesIO(VIDEO_BYTES), FailingSink(fail_after=0), 0, 10)


class TestStaticFileHandler:
    """Tests for StaticFileHandler."""

    @pytest.fixture
    def handler(self, media_dir) -> StaticFileHandler:
        return StaticFileHandler(media_dir, chunk_size=100)

    def serve(self, handler, request, keep_alive=False):
        sink = Sink()
        writer = ResponseWriter(sink)
        handler.handle(request, writer, keep_alive=keep_alive)
        return parse_response(sink.data), writer

    def test_whole_file(self, handler):
        response, writer = self.serve(handler, get("/video.mp4"))

        assert response.status == 200
        assert response.headers["Content-Type"] == "video/mp4"
        assert response.headers["Content-Length"] == "1024"
        assert response.headers["Accept-Ranges"] == "bytes"
        assert response.body == VIDEO_BYTES
        assert writer.body_complete

    def test_index_html(self, handler):
        response, _ = self.serve(handler, get("/"))

        assert response.status == 200
        assert response.headers["Content-Type"] == "text/html"
        assert response.body == b"<h1>home</h1>"

    def test_percent_decoded_name(self, handler):
        response, _ = self.serve(handler, get("/music/Song One.mp3"))

        assert response.status == 200
        assert response.headers["Content-Type"] == "audio/mpeg"

    def test_range_from_start(self, handler):
        response, writer = self.serve(handler, get("/video.mp4", Range="bytes=1000-"), keep_alive=True)

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 1000-1023/1024"
        assert response.headers["Content-Length"] == "24"
        assert response.headers["Connection"] == "keep-alive"
        assert response.body == VIDEO_BYTES[1000:]
        assert writer.keep_alive

    def test_range_suffix(self, handler):
        response, _ = self.serve(handler, get("/video.mp4", Range="bytes=-100"))

        assert response.status == 206
        assert response.headers["Content-Range"] == "bytes 924-1023/1024"
        assert response.body == VIDEO_BYTES[-100:]

    def test_range_closed(self, handler):
        response, _ = self.serve(handler, get("/video.mp4", Range="bytes=0-0"))

        assert response.headers["Content-Length"] == "1"
        assert response.body == VIDEO_BYTES[:1]

    def test_range_without_keep_alive(self, handler):
        response, writer = self.serve(handler, get("/video.mp4", Range="bytes=0-9"), keep_alive=False)

        assert response.headers["Connection"] == "close"
        assert not writer.keep_alive

    def test_lowercase_range_header_is_ignored(self, handler):
        """Test that only the exact "Range" header name triggers a 206."""
        response, _ = self.serve(handler, get("/video.mp4", range="bytes=0-9"))
        assert response.status == 200

    def test_bad_range_raises(self, handler):
        with pytest.raises(RangeSyntaxError):
            self.serve(handler, get("/video.mp4", Range="bytes=a-b"))

    def test_unsatisfiable_range_raises(self, handler):
        with pytest.raises(RangeNotSatisfiable):
            self.serve(handler, get("/video.mp4", Range="bytes=2000-"))

    def test_range_on_empty_file_raises(self, handler):
        with pytest.raises(RangeNotSatisfiable):
            self.serve(handler, get("/empty.bin", Range="bytes=0-"))

    def test_empty_file_without_range(self, handler):
        response, _ = self.serve(handler, get("/empty.bin"))

        assert response.status == 200
        assert response.headers["Content-Length"] == "0"
        assert response.body == b""

    def test_traversal_is_forbidden(self, handler):
        response, _ = self.serve(handler, get("/../secret.txt"))

        assert response.status == 403
        assert b"top secret" not in response.body

    def test_missing_file(self, handler):
        response, _ = self.serve(handler, get("/nope.mp4"))
        assert response.status == 404

    def test_directory_without_index(self, handler):
        response, _ = self.serve(handler, get("/docs/"))
        assert response.status == 404

    def test_unreadable_path_is_404(self, handler, monkeypatch):
        monkeypatch.setattr(Path, "is_dir", deny_access)

        response, _ = self.serve(handler, get("/locked/movie.mp4"))
        assert response.status == 404

    @pytest.mark.parametrize("n", range(16))
    def test_every_open_ended_start(self, handler, media_dir, n):
        """Test bytes=N- for every offset of a 16-byte file."""
        (media_dir / "sixteen.bin").write_bytes(SIXTEEN)

        response, _ = self.serve(handler, get("/sixteen.bin", Range=f"bytes={n}-"))

        assert response.status == 206
        assert response.headers["Content-Range"] == f"bytes {n}-15/16"
        assert response.headers["Content-Length"] == str(16 - n)
        assert response.body == SIXTEEN[n:]

    @pytest.mark.parametrize("n", range(1, 17))
    def test_every_suffix_length(self, handler, media_dir, n):
        """Test bytes=-N for every suffix length of a 16-byte file."""
        (media_dir / "sixteen.bin").write_bytes(SIXTEEN)

        response, _ = self.serve(handler, get("/sixteen.bin", Range=f"bytes=-{n}"))

        assert response.status == 206
        assert response.headers["Content-Range"] == f"bytes {16 - n}-15/16"
        assert response.headers["Content-Length"] == str(n)
        assert response.body == SIXTEEN[-n:]

    @pytest.mark.parametrize("value", ["bytes=16-", "bytes=-17", "bytes=-0", "bytes=15-16"])
    def test_just_outside_sixteen_bytes(self, handler, media_dir, value):
        (media_dir / "sixteen.bin").write_bytes(SIXTEEN)

        with pytest.raises(RangeNotSatisfiable):
            self.serve(handler, get("/sixteen.bin", Range=value))

    def test_head_sends_no_body(self, handler):
        request = HTTPRequest(method="HEAD", uri="/video.mp4")
        response, writer = self.serve(handler, request)

        assert response.status == 200
        assert response.headers["Content-Length"] == "1024"
        assert writer.body_bytes_sent == 0

    def test_client_disconnect_is_streaming_error(self, handler):
        writer = ResponseWriter(FailingSink(fail_after=1))

        with pytest.raises(StreamingError):
            handler.handle(get("/video.mp4"), writer)
        assert writer.headers_sent


class TestMimeTypes:
    """Tests for get_mime_type()."""

    @pytest.mark.parametrize("name,expected", [
        ("index.html", "text/html"),
        ("Movie.MP4", "video/mp4"),
        ("song.mp3", "audio/mpeg"),
        ("list.m3u", "audio/x-mpegurl"),
        ("subs.vtt", "text/vtt"),
        ("/media/clip.mkv", "video/x-matroska"),
    ])
    def test_known_types(self, name, expected):
        assert get_mime_type(name) == expected

    def test_unknown_and_missing_extension(self):
        assert get_mime_type("data.xyz") == DEFAULT_MIME_TYPE
        assert get_mime_type("README") == DEFAULT_MIME_TYPE
        assert get_mime_type(".bashrc") == DEFAULT_MIME_TYPE

    def test_custom_default(self):
        assert get_mime_type("data.xyz", default="text/plain") == "text/plain"
