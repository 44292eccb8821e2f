from __future__ import annotations

import asyncio
import socket
from typing import Any

import httpx
import pytest

from abstract_bot_api.core.config import BouncerConfig
from abstract_bot_api.surfaces.web.endpoints import path_endpoint
from abstract_bot_api.surfaces.web.runner import start_server


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.mark.integration
@pytest.mark.anyio
async def test_bounced_task_round_trips_through_real_socket() -> None:
    done = asyncio.Event()
    seen: list[Any] = []

    async def hello(payload: Any) -> str:
        return "ok:" + payload["text"]

    async def slow(payload: Any) -> None:
        await asyncio.sleep(0.5)
        seen.append(payload)
        done.set()

    port = _free_port()
    server = await start_server(
        f"http://127.0.0.1:{port}",
        port,
        [
            path_endpoint("POST", "/hello", hello),
            path_endpoint("POST", "/slow", slow, bounce=True),
        ],
        host="127.0.0.1",
    )
    try:
        assert server.port == port
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{port}") as client:
            hello_response = await client.post("/hello", json={"text": "hi"})
            loop = asyncio.get_running_loop()
            started = loop.time()
            slow_response = await client.post("/slow", json={"job": 1})
            ack_seconds = loop.time() - started

        assert hello_response.status_code == 200
        assert hello_response.text == "ok:hi"
        assert hello_response.headers["access-control-allow-origin"] == "*"
        assert slow_response.status_code == 200
        assert ack_seconds < 0.5
        await asyncio.wait_for(done.wait(), timeout=5)
        assert seen == [{"job": 1}]
    finally:
        await server.close()
    assert server.closed


@pytest.mark.integration
@pytest.mark.anyio
async def test_bounced_handler_may_outlast_forward_timeout(
    caplog: pytest.LogCaptureFixture,
) -> None:
    done = asyncio.Event()

    async def slow(_payload: Any) -> None:
        await asyncio.sleep(1.0)
        done.set()

    port = _free_port()
    domain = f"http://127.0.0.1:{port}"
    server = await start_server(
        domain,
        port,
        [path_endpoint("POST", "/slow", slow, bounce=True)],
        host="127.0.0.1",
        config=BouncerConfig(domain=domain, forward_timeout_seconds=0.3),
    )
    try:
        async with httpx.AsyncClient(base_url=domain) as client:
            response = await client.post("/slow", json={})
        assert response.status_code == 200
        await asyncio.wait_for(done.wait(), timeout=5)
        await server.app.state.forwarder.drain(timeout=5)
    finally:
        await server.close()

    messages = [record.getMessage() for record in caplog.records]
    assert not any("bouncer.task.forward_failed" in m for m in messages)
