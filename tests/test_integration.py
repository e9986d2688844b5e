"""Integration tests — start a real chat server and talk to it over sockets."""

import json
import os
import re
import socket
import threading
import time
from urllib.parse import quote, unquote

import pytest

from chatrelay.client import decode_log_lines
from chatrelay.config import Config
from chatrelay.server import ChatServer
from chatrelay.transport import ChatTransport

ENTRY_RE = re.compile(r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} (.*)$")


def _make_server(tmp_path, create=True, **overrides):
    """Create a server with port=0 (OS-assigned) and return (server, thread)."""
    defaults = {
        "host": "127.0.0.1",
        "port": 0,
        "log_file": str(tmp_path / "chat.log"),
    }
    defaults.update(overrides)
    server = ChatServer(Config(**defaults), threading.Event())
    if create:
        server.store.ensure_exists()

    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()

    for _ in range(50):
        if server.server_address is not None:
            break
        time.sleep(0.05)
    else:
        raise RuntimeError("Server failed to bind")

    return server, thread


@pytest.fixture
def server(tmp_path):
    srv, thread = _make_server(tmp_path)
    yield srv
    srv.stop()
    thread.join(timeout=5)


def _request(server, target: str, raw: bytes | None = None) -> tuple[int, dict]:
    """Send one request and return (status, parsed JSON body)."""
    host, port = server.server_address
    with socket.create_connection((host, port), timeout=5.0) as sock:
        sock.sendall(raw if raw is not None else
                     f"GET {target} HTTP/1.1\r\nHost: {host}\r\n\r\n".encode())
        response = b""
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            response += chunk

    head, body = response.split(b"\r\n\r\n", 1)
    status_line, *header_lines = head.decode().split("\r\n")
    headers = dict(line.split(": ", 1) for line in header_lines)
    assert headers["Content-Type"] == "application/json"
    assert int(headers["Content-Length"]) == len(body)
    return int(status_line.split()[1]), json.loads(body)


class TestAppendThenRead:
    def test_last_line_is_appended_entry(self, server):
        _request(server, "/alice?first")
        _request(server, "/bob?second%20one")
        status, body = _request(server, "/logs")
        assert status == 200
        lines = body["logs"].split("\n")
        assert lines[-1] == ""
        match = ENTRY_RE.match(lines[-2])
        assert match and match.group(1) == "second%20one"

    def test_append_response_carries_full_log(self, server):
        status, body = _request(server, "/alice?hello")
        assert status == 200
        assert body["logs"].endswith(" hello\n")

    def test_concrete_scenario(self, server):
        _request(server, "alice?hello%20world")
        status, body = _request(server, "/logs")
        assert status == 200
        assert set(body) == {"logs"}
        assert ENTRY_RE.match(body["logs"].rstrip("\n")).group(1) == "hello%20world"
        assert body["logs"].count("\n") == 1

    def test_round_trip_preserves_text(self, server):
        text = "alice: héllo wörld? 100% & more / ok"
        _request(server, f"/alice?{quote(text, safe='')}")
        _, body = _request(server, "/logs")
        entry = body["logs"].split("\n")[-2]
        assert unquote(ENTRY_RE.match(entry).group(1)) == text


class TestReadLogs:
    def test_empty_log(self, server):
        assert _request(server, "/logs") == (200, {"logs": ""})

    def test_repeated_reads_identical(self, server):
        _request(server, "/alice?hi")
        first = _request(server, "/logs")
        second = _request(server, "/logs")
        assert first == second

    def test_deleted_file_reports_no_logs(self, server):
        os.remove(server.store.path)
        assert _request(server, "/logs") == (200, {"error": "No logs found"})


class TestInvalidTargets:
    @pytest.mark.parametrize("target", ["/", "/alice", "/logs/", "/favicon.ico"])
    def test_not_found(self, server, target):
        assert _request(server, target) == (404, {"error": "Invalid URL"})

    def test_malformed_request_line_closes_without_response(self, server):
        host, port = server.server_address
        with socket.create_connection((host, port), timeout=5.0) as sock:
            sock.sendall(b"NONSENSE\r\n")
            assert sock.recv(4096) == b""

    def test_server_survives_bad_request(self, server):
        host, port = server.server_address
        with socket.create_connection((host, port), timeout=5.0) as sock:
            sock.sendall(b"\r\n")
            sock.recv(4096)
        assert _request(server, "/logs")[0] == 200


def _send_dropped(server, raw: bytes) -> bytes:
    """Send raw bytes and return whatever comes back before the server closes."""
    host, port = server.server_address
    received = b""
    with socket.create_connection((host, port), timeout=5.0) as sock:
        try:
            sock.sendall(raw)
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                received += chunk
        except (ConnectionResetError, BrokenPipeError):
            pass
    return received


class TestOversizedRequestLine:
    def test_nothing_appended(self, server):
        target = "/alice?" + "a" * 10000
        assert _send_dropped(server, f"GET {target} HTTP/1.1\r\n\r\n".encode()) == b""
        assert _request(server, "/logs") == (200, {"logs": ""})

    def test_log_still_decodes(self, server):
        _request(server, "/alice?before")
        message = quote("alice: " + "é" * 1400, safe="")
        assert _send_dropped(server, f"GET /alice?{message} HTTP/1.1\r\n\r\n".encode()) == b""

        _, body = _request(server, "/logs")
        lines = decode_log_lines(body["logs"])
        assert [ENTRY_RE.match(l).group(1) for l in lines if l] == ["before"]

    def test_limit_is_configurable(self, tmp_path):
        srv, thread = _make_server(tmp_path, max_request_line=64)
        try:
            assert _send_dropped(srv, b"GET /alice?" + b"x" * 100 + b" HTTP/1.1\r\n\r\n") == b""
            assert _request(srv, "/alice?short")[0] == 200
        finally:
            srv.stop()
            thread.join(timeout=5)


class TestAppendFailure:
    def test_unwritable_log_returns_500(self, tmp_path):
        srv, thread = _make_server(tmp_path, create=False, log_file=str(tmp_path))
        try:
            status, body = _request(srv, "/alice?hi")
            assert status == 500
            assert "error" in body
            assert _request(srv, "/logs") == (200, {"error": "No logs found"})
        finally:
            srv.stop()
            thread.join(timeout=5)


class TestMultipleClients:
    def test_concurrent_appends(self, server):
        errors = []

        def client_worker(idx):
            try:
                status, _ = _request(server, f"/user{idx}?msg-{idx}")
                assert status == 200
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=client_worker, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        _, body = _request(server, "/logs")
        messages = sorted(ENTRY_RE.match(l).group(1) for l in body["logs"].splitlines())
        assert messages == sorted(f"msg-{i}" for i in range(10))

    def test_slow_client_does_not_block_others(self, server):
        host, port = server.server_address
        with socket.create_connection((host, port), timeout=5.0) as idle:
            idle.sendall(b"GET /lo")  # never finishes its request line
            assert _request(server, "/logs")[0] == 200


class TestTransportAgainstServer:
    @pytest.mark.asyncio
    async def test_send_and_fetch(self, server):
        host, port = server.server_address
        transport = ChatTransport(host, port, timeout=5.0)
        try:
            await transport.send_message("alice", "alice: hello world?")
            logs = await transport.fetch_logs()
        finally:
            await transport.aclose()
        entry = logs.split("\n")[-2]
        assert unquote(ENTRY_RE.match(entry).group(1)) == "alice: hello world?"
