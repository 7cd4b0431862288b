"""
End-to-end tests over the /ws WebSocket.

Starlette's TestClient runs the app (lifespan included) on a background
event loop, so tails started through the API keep running between calls.
"""

import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from polling import append_line
from smartlog.config import Settings
from smartlog.main import create_app
from smartlog.records import parse_line
from smartlog.registry import SourceRegistry


@pytest.fixture
def test_client(settings: Settings):
    with TestClient(create_app(settings)) as c:
        yield c


def _select(ws, path: str) -> dict:
    ws.send_json({"type": "select", "file_path": path})
    message = ws.receive_json()
    assert message["type"] == "buffer"
    return message


def test_select_unknown_source_returns_empty_buffer(test_client: TestClient):
    with test_client.websocket_connect("/ws") as ws:
        message = _select(ws, "/tmp/never-registered.log")
    assert message == {"type": "buffer", "file_path": "/tmp/never-registered.log", "entries": []}


def test_malformed_messages_are_ignored(test_client: TestClient):
    with test_client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        ws.send_text("[1, 2]")
        ws.send_json({"type": "subscribe", "file_path": "/tmp/a.log"})
        ws.send_json({"type": "select"})
        ws.send_json({"type": "select", "file_path": 42})
        ws.send_bytes(b"\xff\xfe")
        message = _select(ws, "/tmp/a.log")
    assert message["file_path"] == "/tmp/a.log"


def test_select_path_is_normalized(test_client: TestClient):
    with test_client.websocket_connect("/ws") as ws:
        message = _select(ws, " /tmp/./logs/../a.log ")
    assert message["file_path"] == "/tmp/a.log"


def test_history_then_live_records(test_client: TestClient):
    hub = test_client.app.state.hub
    path = "/var/log/app.log"
    for msg in ("one", "two", "three"):
        test_client.portal.call(hub.publish, path, parse_line(f'{{"msg":"{msg}"}}'))

    with test_client.websocket_connect("/ws") as ws:
        message = _select(ws, path)
        assert [e["msg"] for e in message["entries"]] == ["one", "two", "three"]

        test_client.portal.call(hub.publish, path, parse_line('{"msg":"four"}'))
        live = ws.receive_json()
    assert live == {"type": "log", "file_path": path, "entry": {"msg": "four", "raw": '{"msg":"four"}'}}


def test_disconnect_unsubscribes(test_client: TestClient):
    hub = test_client.app.state.hub
    with test_client.websocket_connect("/ws") as ws:
        _select(ws, "/tmp/a.log")
        assert hub.session_count == 1
    deadline = time.monotonic() + 5
    while hub.session_count and time.monotonic() < deadline:
        time.sleep(0.05)
    assert hub.session_count == 0
    assert hub.subscribers("/tmp/a.log") == set()


@pytest.mark.usefixtures("requires_tail")
def test_add_stream_remove(test_client: TestClient, log_file: Path):
    path = str(log_file)
    resp = test_client.post("/api/config/add", json={"path": path})
    assert resp.status_code == 200

    with test_client.websocket_connect("/ws") as ws:
        assert _select(ws, path)["entries"] == []

        append_line(log_file, '{"ts":"t1","lv":"INFO","msg":"hello"}')
        first = ws.receive_json()
        assert first["type"] == "log"
        assert first["file_path"] == path
        assert first["entry"]["msg"] == "hello"

        append_line(log_file, "oops")
        second = ws.receive_json()
        assert second["type"] == "log"
        assert second["entry"]["raw"] == "oops"
        assert second["entry"]["msg"] == "oops"

        assert test_client.post("/api/config/remove", json={"path": path}).status_code == 200
        append_line(log_file, '{"msg":"after removal"}')
        time.sleep(1.5)

        # Anything the removed tail had emitted would be queued ahead of this reply.
        assert _select(ws, path)["entries"] == []


@pytest.mark.usefixtures("requires_tail")
def test_startup_follows_registered_sources(settings: Settings, log_file: Path, tmp_path: Path):
    log_file.write_text('{"msg":"already there"}\n')
    registry = SourceRegistry(settings.config_file)
    registry.add(str(log_file))
    registry.add(str(tmp_path / "gone.log"))

    with TestClient(create_app(settings)) as client:
        tails = client.app.state.tails
        assert tails.paths == [str(log_file)]
        with client.websocket_connect("/ws") as ws:
            deadline = time.monotonic() + 5
            entries: list = []
            while not entries and time.monotonic() < deadline:
                entries = _select(ws, str(log_file))["entries"]
                if not entries:
                    time.sleep(0.1)
        assert [e["msg"] for e in entries] == ["already there"]
    assert tails.paths == []
