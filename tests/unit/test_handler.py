"""
Unit tests for ConnectionHandler, over a local socket pair.

The client side writes whole requests (and usually half-closes) before
the handler runs, so the handler can run on the test thread. Responses
are small enough to fit in the socket buffer, except in the slow-reader
test, which runs the handler on its own thread.
"""

import json
import logging
import socket
import threading
import time

import pytest

from rangeserver.core.connection import Connection, ConnectionState
from rangeserver.core.handler import ConnectionHandler
from rangeserver.handlers.static import StaticFileHandler
from rangeserver.http.errors import StreamingError

from conftest import VIDEO_BYTES, read_response


class Client:
    """Client end of a socketpair plus the server-side Connection."""

    def __init__(self, timeout: float = 2.0):
        server_sock, client_sock = socket.socketpair()
        self.sock = client_sock
        self.sock.settimeout(5.0)
        self.conn = Connection(server_sock, ("127.0.0.1", 40000), timeout=timeout)

    def send(self, *requests: bytes, close: bool = True):
        for request in requests:
            self.sock.sendall(request)
        if close:
            self.sock.shutdown(socket.SHUT_WR)

    def responses(self):
        reader = self.sock.makefile("rb")
        found = []
        while True:
            response = read_response(reader)
            if response is None:
                return found
            found.append(response)

    def close(self):
        self.sock.close()


@pytest.fixture
def client():
    c = Client()
    yield c
    c.close()


def make_handler(client, config, dispatcher, **kwargs):
    return ConnectionHandler(client.conn, config, dispatcher, **kwargs)


class TestDispatch:
    """Tests for command vs. file dispatch."""

    def test_file_request(self, client, config, dispatcher):
        client.send(b"GET /video.mp4 HTTP/1.1\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 200
        assert response.body == VIDEO_BYTES
        assert client.conn.state == ConnectionState.CLOSED
        assert client.conn.requests_handled == 1

    def test_command_beats_file(self, client, config, dispatcher, fake_system, media_dir):
        """Test that /suspend runs the command although a file named suspend exists."""
        assert (media_dir / "suspend").is_file()

        client.send(b"GET /suspend HTTP/1.1\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 200
        assert b"PC is going to sleep" in response.body
        assert fake_system.calls == 1

    def test_command_with_query_is_a_file_request(self, client, config, dispatcher, fake_system):
        client.send(b"GET /suspend?x=1 HTTP/1.1\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.body == b"not a command"
        assert fake_system.calls == 0

    def test_playlist_command(self, client, config, dispatcher):
        client.send(b"GET /channels.m3u HTTP/1.1\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 200
        assert response.body.startswith(b"#EXTM3U")


class TestErrors:
    """Tests for error responses and silent closes."""

    def test_malformed_request_is_400(self, client, config, dispatcher):
        client.send(b"NONSENSE\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 400
        assert response.headers["Connection"] == "close"

    def test_bad_range_is_400(self, client, config, dispatcher):
        client.send(b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=x-y\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 400

    def test_unsatisfiable_range_is_416(self, client, config, dispatcher):
        client.send(b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=5000-\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 416
        assert b"<h1>416 Range Not Satisfiable</h1>" in response.body

    def test_traversal_is_403(self, client, config, dispatcher):
        client.send(b"GET /%2e%2e/secret.txt HTTP/1.1\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 403
        assert b"top secret" not in response.body

    def test_huge_range_offset_is_416(self, client, config, dispatcher, caplog):
        client.send(b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=" + b"9" * 5000 + b"-\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 416
        assert "ERROR" not in caplog.text

    def test_missing_file_is_404(self, client, config, dispatcher):
        client.send(b"GET /missing.mp4 HTTP/1.1\r\n\r\n")
        make_handler(client, config, dispatcher).handle()

        [response] = client.responses()
        assert response.status == 404

    def test_unexpected_error_is_500(self, client, config, dispatcher):
        class ExplodingHandler(StaticFileHandler):
            def handle(self, request, writer, keep_alive=False):
                raise ValueError("boom")

        client.send(b"GET /video.mp4 HTTP/1.1\r\n\r\n")
        handler = make_handler(
            client, config, dispatcher,
            static_handler=ExplodingHandler(config.base_dir),
        )
        handler.handle()

        [response] = client.responses()
        assert response.status == 500

    def test_eof_without_request_sends_nothing(self, client, config, dispatcher):
        client.send()
        make_handler(client, config, dispatcher).handle()

        assert client.responses() == []
        assert client.conn.is_closed

    def test_timeout_closes_silently(self, config, dispatcher, caplog):
        client = Client(timeout=0.2)
        try:
            # Connected, but never sends anything
            handler = make_handler(client, config.with_overrides(timeout=0.2), dispatcher)
            with caplog.at_level(logging.DEBUG, logger="rangeserver"):
                handler.handle()

            client.sock.shutdown(socket.SHUT_WR)
            assert client.responses() == []
            assert "Socket timeout" in caplog.text
        finally:
            client.close()

    def test_streaming_failure_aborts_without_second_response(self, client, config, dispatcher, caplog):
        class ShortHandler(StaticFileHandler):
            def handle(self, request, writer, keep_alive=False):
                writer.start_file("video/mp4", 100)
                writer.write_body(b"x" * 10)
                raise StreamingError("file shrank")

        client.send(b"GET /video.mp4 HTTP/1.1\r\n\r\n")
        handler = make_handler(
            client, config, dispatcher,
            static_handler=ShortHandler(config.base_dir),
        )
        handler.handle()

        raw = b""
        while True:
            chunk = client.sock.recv(4096)
            if not chunk:
                break
            raw += chunk

        assert raw.count(b"HTTP/1.1 ") == 1
        assert raw.endswith(b"x" * 10)
        assert "Streaming failure" in caplog.text
        assert client.conn.is_closed


class TestSlowReader:
    """Tests for clients that pause while a file is being sent."""

    def test_pause_longer_than_request_timeout(self, config, dispatcher, media_dir):
        """Test that the request timeout doesn't cut off a paused player."""
        payload = bytes(range(256)) * 16384  # 4 MiB, far more than the socket buffers
        (media_dir / "big.mp4").write_bytes(payload)

        client = Client(timeout=0.2)
        try:
            handler = make_handler(
                client, config.with_overrides(timeout=0.2, keep_alive_timeout=0.2), dispatcher,
            )
            client.send(b"GET /big.mp4 HTTP/1.1\r\n\r\n")
            worker = threading.Thread(target=handler.handle, daemon=True)
            worker.start()

            # Server is now blocked in sendall() with full buffers
            time.sleep(1.0)

            [response] = client.responses()
            worker.join(timeout=5.0)
        finally:
            client.close()

        assert response.status == 200
        assert len(response.body) == len(payload)
        assert response.body == payload
        assert client.conn.requests_handled == 1


class TestKeepAlive:
    """Tests for persistent connections after a 206."""

    def test_second_request_after_206(self, client, config, dispatcher):
        client.send(
            b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=0-99\r\n\r\n",
            b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=100-199\r\n\r\n",
        )
        make_handler(client, config, dispatcher).handle()

        first, second = client.responses()
        assert first.status == 206
        assert first.headers["Connection"] == "keep-alive"
        assert first.body == VIDEO_BYTES[0:100]
        assert second.status == 206
        assert second.body == VIDEO_BYTES[100:200]
        assert client.conn.requests_handled == 2

    def test_200_closes(self, client, config, dispatcher):
        client.send(
            b"GET /index.html HTTP/1.1\r\n\r\n",
            b"GET /video.mp4 HTTP/1.1\r\n\r\n",
        )
        make_handler(client, config, dispatcher).handle()

        responses = client.responses()
        assert len(responses) == 1
        assert responses[0].headers["Connection"] == "close"

    def test_client_close_is_honored(self, client, config, dispatcher):
        client.send(
            b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=0-9\r\nConnection: close\r\n\r\n",
            b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=0-9\r\n\r\n",
        )
        make_handler(client, config, dispatcher).handle()

        responses = client.responses()
        assert len(responses) == 1
        assert responses[0].status == 206
        assert responses[0].headers["Connection"] == "close"

    def test_keep_alive_max(self, client, config, dispatcher):
        request = b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=0-9\r\n\r\n"
        client.send(request, request, request)
        make_handler(client, config.with_overrides(keep_alive_max=2), dispatcher).handle()

        responses = client.responses()
        assert len(responses) == 2
        assert responses[0].headers["Connection"] == "keep-alive"
        assert responses[1].headers["Connection"] == "close"

    def test_error_after_206_closes(self, client, config, dispatcher):
        client.send(
            b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=0-9\r\n\r\n",
            b"GET /missing HTTP/1.1\r\n\r\n",
            b"GET /video.mp4 HTTP/1.1\r\n\r\n",
        )
        make_handler(client, config, dispatcher).handle()

        statuses = [r.status for r in client.responses()]
        assert statuses == [206, 404]


class TestAccessLog:
    """Tests for the per-request access log line."""

    def test_text_line(self, client, config, dispatcher, caplog):
        client.send(b"GET /video.mp4 HTTP/1.1\r\nRange: bytes=0-9\r\nConnection: close\r\n\r\n")
        with caplog.at_level(logging.INFO, logger="rangeserver.access"):
            make_handler(client, config, dispatcher).handle()

        [record] = [r for r in caplog.records if r.name == "rangeserver.access"]
        line = record.getMessage()
        assert '"GET /video.mp4" 206 10 bytes=0-9' in line
        assert client.conn.id in line

    def test_json_line(self, client, config, dispatcher, caplog):
        client.send(b"GET /nope HTTP/1.1\r\nUser-Agent: VLC/3.0\r\n\r\n")
        with caplog.at_level(logging.INFO, logger="rangeserver.access"):
            make_handler(client, config.with_overrides(log_format="json"), dispatcher).handle()

        [record] = [r for r in caplog.records if r.name == "rangeserver.access"]
        entry = json.loads(record.getMessage())
        assert entry["status_code"] == 404
        assert entry["path"] == "/nope"
        assert entry["user_agent"] == "VLC/3.0"
        assert entry["client_ip"] == "127.0.0.1"
