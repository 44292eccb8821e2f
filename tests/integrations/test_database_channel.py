from __future__ import annotations

from typing import Any

import pytest

from abstract_bot_api.core import capabilities
from abstract_bot_api.core.exceptions import PayloadParseError
from abstract_bot_api.integrations.database import make_database_endpoint


@pytest.mark.anyio
async def test_inbound_and_bot_outputs_are_stored() -> None:
    stored: list[dict[str, Any]] = []

    async def storer(record: dict[str, Any]) -> None:
        stored.append(record)

    async def handler() -> str:
        assert capabilities.user_id() == "dana"
        assert capabilities.medium() == "websocket"
        return await capabilities.reply(f"echo:{capabilities.last_event().text}")

    endpoint = make_database_endpoint(storer, handler, "/db", "helper-bot")
    key = await endpoint.handler({"from": "dana", "text": "hello"})

    assert endpoint.bounce is True
    inbound, outbound = stored
    assert inbound["from"] == "dana"
    assert inbound["text"] == "hello"
    assert isinstance(inbound["time"], int)
    assert inbound["key"] != key
    assert outbound["from"] == "helper-bot"
    assert outbound["key"] == key
    assert outbound["text"] == "echo:hello"


@pytest.mark.anyio
async def test_request_without_sender_is_rejected() -> None:
    stored: list[dict[str, Any]] = []

    async def storer(record: dict[str, Any]) -> None:
        stored.append(record)

    async def handler() -> None:
        raise AssertionError("handler must not run")

    endpoint = make_database_endpoint(storer, handler, "/db", "helper-bot")
    with pytest.raises(PayloadParseError):
        await endpoint.handler({"text": "anonymous"})
    assert stored == []
