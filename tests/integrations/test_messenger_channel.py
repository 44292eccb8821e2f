from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from abstract_bot_api.core import capabilities
from abstract_bot_api.integrations.chat.models import FileAttachment, ImageReply
from abstract_bot_api.integrations.messenger import (
    MessengerClient,
    handle_messenger_update,
    messenger_attachments,
    messenger_text,
    messenger_verification_endpoint,
)
from abstract_bot_api.surfaces.web.app import create_bouncer_app

PAGE_ID = "PAGE1"


def _send_api(_request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"recipient_id": "USER1", "message_id": "m_OUT"})


def _webhook(messaging: dict[str, Any]) -> dict[str, Any]:
    return {
        "object": "page",
        "entry": [{"id": PAGE_ID, "messaging": [{"sender": {"id": "USER1"}, **messaging}]}],
    }


def _bodies(transport) -> list[dict[str, Any]]:
    return [json.loads(request.content) for request in transport.requests]


@pytest.fixture()
def messenger(recording_transport):
    transport = recording_transport(_send_api)
    client = MessengerClient("page-token", client=transport.client())
    return transport, client


def test_text_falls_back_to_postback_payload() -> None:
    assert messenger_text(_webhook({"message": {"mid": "m1", "text": "hi"}})) == "hi"
    assert messenger_text(_webhook({"postback": {"payload": "GET_STARTED"}})) == "GET_STARTED"
    assert messenger_text({"entry": []}) == ""


def test_attachments_keep_known_types_with_urls() -> None:
    payload = _webhook(
        {
            "message": {
                "mid": "m1",
                "attachments": [
                    {"type": "image", "payload": {"url": "https://cdn.test/a.jpg"}},
                    {"type": "fallback", "payload": {"url": "https://x.test"}},
                    {"type": "audio", "payload": {}},
                ],
            }
        }
    )

    assert messenger_attachments(payload) == (
        FileAttachment(mime_type="image/jpeg", file_uri="https://cdn.test/a.jpg"),
    )


@pytest.mark.anyio
async def test_update_replies_through_page_send_api(messenger) -> None:
    transport, client = messenger
    seen: dict[str, Any] = {}

    async def handler() -> str:
        seen["medium"] = capabilities.medium()
        seen["user"] = capabilities.user_id()
        seen["page"] = capabilities.bot_phone()
        seen["message_id"] = capabilities.message_id()
        await capabilities.typing_indicator()
        return await capabilities.reply("<b>Hello</b><br>there")

    result = await handle_messenger_update(
        client, _webhook({"message": {"mid": "m_IN", "text": "hey"}}), handler
    )
    await client.close()

    assert result == "m_OUT"
    assert seen == {
        "medium": "facebook-messenger",
        "user": "USER1",
        "page": PAGE_ID,
        "message_id": "m_IN",
    }
    typing, text = _bodies(transport)
    assert typing == {"recipient": {"id": "USER1"}, "sender_action": "typing_on"}
    assert text == {
        "recipient": {"id": "USER1"},
        "messaging_type": "RESPONSE",
        "message": {"text": "*Hello*\nthere"},
    }
    assert transport.requests[-1].url.path == f"/v24.0/{PAGE_ID}/messages"
    assert transport.requests[-1].headers["authorization"] == "Bearer page-token"


@pytest.mark.anyio
async def test_images_are_sent_by_link_or_data_url(messenger) -> None:
    transport, client = messenger

    async def handler() -> None:
        await capabilities.reply_image(ImageReply(link="https://cdn.test/p.png", caption="<u>x</u>"))
        await capabilities.reply_image(ImageReply(data="AAAA"))

    await handle_messenger_update(
        client, _webhook({"message": {"mid": "m_IN", "text": "pics"}}), handler
    )
    await client.close()

    by_link, by_data = _bodies(transport)
    assert by_link["message"] == {
        "attachment": {
            "type": "image",
            "payload": {"url": "https://cdn.test/p.png", "is_reusable": True},
        },
        "text": "_x_",
    }
    assert by_data["message"]["attachment"]["payload"] == {
        "url": "data:image/jpeg;base64,AAAA",
        "is_reusable": False,
    }


@pytest.mark.anyio
async def test_client_helpers_build_send_api_payloads(messenger) -> None:
    transport, client = messenger

    await client.send_reply(PAGE_ID, "USER1", "m_IN", "ok")
    await client.send_quick_replies(
        PAGE_ID, "USER1", "Pick", [{"content_type": "text", "title": "A", "payload": "A"}]
    )
    await client.send_button_template(
        PAGE_ID, "USER1", "Go", [{"type": "postback", "title": "Go", "payload": "GO"}]
    )
    await client.send_attachment(PAGE_ID, "USER1", "https://cdn.test/f.pdf")
    await client.close()

    reply, quick, buttons, attachment = _bodies(transport)
    assert reply["reply_to"] == {"mid": "m_IN"}
    assert quick["message"]["quick_replies"][0]["title"] == "A"
    assert buttons["message"]["attachment"]["payload"]["template_type"] == "button"
    assert attachment["message"]["attachment"] == {
        "type": "file",
        "payload": {"url": "https://cdn.test/f.pdf", "is_reusable": True},
    }


@pytest.mark.anyio
async def test_updates_without_sender_or_text_are_ignored(messenger) -> None:
    transport, client = messenger

    async def handler() -> None:
        raise AssertionError("handler must not run")

    assert await handle_messenger_update(client, {"entry": []}, handler) is None
    assert (
        await handle_messenger_update(client, _webhook({"read": {"watermark": 1}}), handler)
        is None
    )
    assert await handle_messenger_update(client, "junk", handler) is None
    await client.close()
    assert transport.requests == []


def test_verification_endpoint_echoes_challenge() -> None:
    app = create_bouncer_app(
        "http://bot.test", [messenger_verification_endpoint("token-1", "/fb")]
    )
    with TestClient(app) as client:
        ok = client.get(
            "/fb?hub.mode=subscribe&hub.verify_token=token-1&hub.challenge=abc"
        )
        wrong_mode = client.get(
            "/fb?hub.mode=unsubscribe&hub.verify_token=token-1&hub.challenge=abc"
        )

    assert ok.status_code == 200
    assert ok.text == "abc"
    assert wrong_mode.status_code == 404
