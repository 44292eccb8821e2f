from __future__ import annotations

import math
from typing import Any, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from abstract_bot_api.core import capabilities
from abstract_bot_api.integrations.websocket import (
    SocketManager,
    WebsocketLogin,
    attach_websocket,
    websocket_inject,
)


class FakeSocket:
    def __init__(self, *, broken: bool = False) -> None:
        self.frames: list[dict[str, Any]] = []
        self.broken = broken

    async def send_json(self, frame: dict[str, Any]) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.frames.append(frame)


def _login(token: str) -> Optional[WebsocketLogin]:
    if token != "good":
        return None
    return WebsocketLogin(unique_id="user-1", human_readable_id="Dana")


@pytest.mark.anyio
async def test_messages_for_offline_users_are_buffered_until_login() -> None:
    manager = SocketManager()

    await manager.send_to_user("user-1", {"key": "k1", "text": "first"})
    await manager.send_to_user("user-1", {"key": "k2", "text": "second"})
    assert [m["key"] for m in manager.buffered["user-1"]] == ["k1", "k2"]

    socket = FakeSocket()
    await manager.add_socket(socket, "user-1")  # type: ignore[arg-type]

    assert "user-1" not in manager.buffered
    assert [(f["key"], f["text"]) for f in socket.frames] == [
        ("k1", "first"),
        ("k2", "second"),
    ]
    assert all(isinstance(f["timestamp"], int) for f in socket.frames)


@pytest.mark.anyio
async def test_message_buffers_only_when_every_socket_fails() -> None:
    manager = SocketManager()
    healthy, broken = FakeSocket(), FakeSocket(broken=True)
    await manager.add_socket(broken, "user-1")  # type: ignore[arg-type]
    await manager.add_socket(healthy, "user-1")  # type: ignore[arg-type]

    await manager.send_to_user("user-1", {"key": "k1", "text": "hi"})
    assert [f["key"] for f in healthy.frames] == ["k1"]
    assert manager.buffered == {}

    manager.remove_socket(healthy)  # type: ignore[arg-type]
    await manager.send_to_user("user-1", {"key": "k2", "text": "again"})
    assert manager.buffered == {"user-1": [{"key": "k2", "text": "again"}]}

    manager.remove_socket(broken)  # type: ignore[arg-type]
    assert manager.mapping == {}


@pytest.mark.anyio
async def test_offline_buffer_keeps_only_the_newest_messages() -> None:
    manager = SocketManager(max_buffered=2)

    for key in ("k1", "k2", "k3"):
        await manager.send_to_user("user-1", {"key": key})

    assert manager.buffered == {"user-1": [{"key": "k2"}, {"key": "k3"}]}

    socket = FakeSocket()
    await manager.add_socket(socket, "user-1")  # type: ignore[arg-type]

    assert [f["key"] for f in socket.frames] == ["k2", "k3"]


@pytest.mark.anyio
async def test_capabilities_emit_keyed_frames() -> None:
    sent: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    async def handler() -> str:
        assert capabilities.medium() == "websocket"
        assert capabilities.user_id() == "Dana"
        assert capabilities.file_limit_mb() == math.inf
        stop = await capabilities.spinner("thinking")
        await stop()
        update = await capabilities.progress_bar("upload")
        await update(40)
        await capabilities.send_file("https://cdn.test/a.mp4")
        return await capabilities.reply("done")

    key = await websocket_inject(send, "Dana")(handler)()

    spin_on, spin_off, progress, file_frame, reply = sent
    assert spin_on["key"] == spin_off["key"]
    assert (spin_on["spinner"], spin_off["spinner"]) == (True, False)
    assert progress["percentage"] == 40
    assert progress["text"] == "upload"
    assert file_frame["url"] == "https://cdn.test/a.mp4"
    assert reply == {"key": key, "text": "done"}


def test_socket_round_trip_through_app() -> None:
    async def handler() -> None:
        await capabilities.reply(f"echo:{capabilities.last_event().text}")

    app = FastAPI()
    manager = attach_websocket(app, _login, handler)

    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"token": "good", "text": "hi"})
            frame = ws.receive_json()
            assert frame["text"] == "echo:hi"
            assert set(frame) == {"timestamp", "key", "text"}
            assert list(manager.mapping) == ["user-1"]


def test_rejected_login_closes_the_socket() -> None:
    async def handler() -> None:
        raise AssertionError("handler must not run")

    app = FastAPI()
    attach_websocket(app, _login, handler, path="/chat")

    with TestClient(app) as client:
        with client.websocket_connect("/chat") as ws:
            ws.send_json({"token": "bad", "text": "hi"})
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()
