from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from abstract_bot_api.core import capabilities
from abstract_bot_api.core.exceptions import ChannelPermanentError
from abstract_bot_api.integrations.chat.models import (
    Contact,
    EditEvent,
    ImageReply,
    InlineAttachment,
    MessageEvent,
)
from abstract_bot_api.integrations.telegram.adapter import (
    TelegramProgressBar,
    TelegramSpinner,
    best_phone_from_contact,
    handle_telegram_update,
    make_telegram_endpoint,
    mime_type_for_path,
    render_progress,
    telegram_normalize_event,
)
from abstract_bot_api.integrations.telegram.client import TelegramBotClient

TOKEN = "123:abc"


def _telegram_api(request: httpx.Request) -> httpx.Response:
    if request.url.path.startswith("/file/"):
        return httpx.Response(200, content=b"PHOTO")
    method = request.url.path.rsplit("/", 1)[-1]
    if method == "getFile":
        return httpx.Response(
            200, json={"ok": True, "result": {"file_path": "photos/file_1.png"}}
        )
    if method == "sendChatAction":
        return httpx.Response(200, json={"ok": True, "result": True})
    return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})


def _calls(transport) -> list[tuple[str, Any]]:
    out: list[tuple[str, Any]] = []
    for request in transport.requests:
        method = request.url.path.rsplit("/", 1)[-1]
        body: Any = None
        if request.headers.get("content-type", "").startswith("application/json"):
            body = json.loads(request.content)
        out.append((method, body))
    return out


@pytest.fixture()
def telegram(recording_transport):
    transport = recording_transport(_telegram_api)
    client = TelegramBotClient(TOKEN, client=transport.client())
    return transport, client


def test_best_phone_prefers_preferred_cellphone_from_vcard() -> None:
    vcard = "\n".join(
        [
            "BEGIN:VCARD",
            "TEL;HOME:+1 111",
            "TEL;CELL:+1 222",
            "TEL;CELL;PREF:+1 333",
            "END:VCARD",
        ]
    )
    assert best_phone_from_contact({"phone_number": "+1 000", "vcard": vcard}) == "+1 333"
    assert (
        best_phone_from_contact(
            {"phone_number": "+1 000", "vcard": "TEL;MOBILE:+1 444\nTEL;HOME:+1 555"}
        )
        == "+1 444"
    )
    assert best_phone_from_contact({"phone_number": "+1 000"}) == "+1 000"
    assert best_phone_from_contact({"phone_number": "+1 000", "vcard": "TEL;HOME:+1"}) == "+1 000"


def test_mime_type_for_path_falls_back_to_octet_stream() -> None:
    assert mime_type_for_path("voice/file_3.oga") == "audio/ogg"
    assert mime_type_for_path("documents/REPORT.PDF") == "application/pdf"
    assert mime_type_for_path("noext") == "application/octet-stream"


def test_render_progress_clamps_fraction() -> None:
    assert render_progress("Uploading", 0.5, cells=4) == "Uploading [▓▓░░] 50%"
    assert render_progress("Uploading", 2, cells=2) == "Uploading [▓▓] 100%"
    assert render_progress("Uploading", -1, cells=2) == "Uploading [░░] 0%"


@pytest.mark.anyio
async def test_normalize_joins_text_links_and_downloads_largest_photo(telegram) -> None:
    transport, client = telegram
    message = {
        "message_id": 7,
        "from": {"id": 99},
        "text": "look",
        "entities": [
            {"type": "bold", "offset": 0, "length": 4},
            {"type": "text_link", "offset": 0, "length": 4, "url": "https://x.test/a"},
        ],
        "photo": [
            {"file_id": "small", "width": 90},
            {"file_id": "large", "width": 1280},
        ],
        "caption": "a cat",
    }

    event = await telegram_normalize_event(client, message)
    await client.close()

    assert isinstance(event, MessageEvent)
    assert event.text == "look\nhttps://x.test/a"
    assert event.attachments == (
        InlineAttachment(mime_type="image/png", data_base64="UEhPVE8=", caption="a cat"),
    )
    assert _calls(transport)[0] == ("getFile", {"file_id": "large"})
    assert str(transport.requests[1].url) == (
        "https://api.telegram.org/file/bot123:abc/photos/file_1.png"
    )


@pytest.mark.anyio
async def test_normalize_contact_marks_own_phone_and_edits(telegram) -> None:
    _transport, client = telegram
    message = {
        "message_id": 8,
        "from": {"id": 99},
        "contact": {
            "phone_number": "+972500000000",
            "first_name": "Dana",
            "last_name": "Levi",
            "user_id": 99,
        },
    }

    event = await telegram_normalize_event(client, message, edited=True)
    other = await telegram_normalize_event(
        client, {**message, "contact": {**message["contact"], "user_id": 5}}
    )
    await client.close()

    assert isinstance(event, EditEvent)
    assert event.on_message_id == "8"
    assert event.contact == Contact(phone="+972500000000", name="Dana Levi")
    assert event.own_phone == "+972500000000"
    assert other.own_phone is None


@pytest.mark.anyio
async def test_update_runs_handler_with_chat_bound_capabilities(telegram) -> None:
    transport, client = telegram
    seen: dict[str, Any] = {}

    async def handler() -> str:
        seen["medium"] = capabilities.medium()
        seen["user"] = capabilities.user_id()
        seen["text"] = capabilities.last_event().text
        seen["limit"] = capabilities.file_limit_mb()
        await capabilities.typing_indicator()
        return await capabilities.reply("<b>hi</b> <script>x</script>")

    update = {
        "update_id": 1,
        "message": {"message_id": 3, "from": {"id": 99}, "chat": {"id": 99}, "text": "yo"},
    }
    result = await handle_telegram_update(client, update, handler)
    await client.close()

    assert result == "42"
    assert seen == {"medium": "telegram", "user": "99", "text": "yo", "limit": 50}
    calls = _calls(transport)
    assert calls[0] == ("sendChatAction", {"chat_id": 99, "action": "typing"})
    method, body = calls[1]
    assert method == "sendMessage"
    assert body["chat_id"] == 99
    assert body["parse_mode"] == "HTML"
    assert body["text"] == "<b>hi</b> &lt;script&gt;x&lt;/script&gt;"


@pytest.mark.anyio
async def test_reply_with_video_tag_sends_text_then_video(telegram) -> None:
    transport, client = telegram

    async def handler() -> None:
        await capabilities.reply(
            'Here you go <video><source src="https://cdn.test/v.mp4"></video> enjoy'
        )
        await capabilities.send_file("https://cdn.test/funny.gif")
        await capabilities.reply_image(ImageReply(link="https://cdn.test/p.jpg", caption="c"))

    update = {"message": {"message_id": 3, "chat": {"id": 5}, "text": "video please"}}
    await handle_telegram_update(client, update, handler)
    await client.close()

    calls = _calls(transport)
    assert [method for method, _ in calls] == [
        "sendMessage",
        "sendVideo",
        "sendAnimation",
        "sendPhoto",
    ]
    assert calls[0][1]["text"] == "Here you go\nenjoy"
    assert calls[1][1] == {"chat_id": 5, "video": "https://cdn.test/v.mp4"}
    assert calls[3][1] == {"chat_id": 5, "photo": "https://cdn.test/p.jpg", "caption": "c"}


@pytest.mark.anyio
async def test_inline_image_is_uploaded_as_multipart(telegram) -> None:
    transport, client = telegram

    async def handler() -> str:
        return await capabilities.reply_image(ImageReply(data="data:image/png;base64,UE5H"))

    await handle_telegram_update(client, {"message": {"chat": {"id": 5}, "text": "x"}}, handler)
    await client.close()

    request = transport.requests[-1]
    assert request.url.path.endswith("/sendPhoto")
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b"PNG" in request.content
    assert b"image/png" in request.content


@pytest.mark.anyio
async def test_updates_without_message_are_ignored(telegram) -> None:
    transport, client = telegram

    async def handler() -> None:
        raise AssertionError("handler must not run")

    assert await handle_telegram_update(client, {"update_id": 2, "poll": {}}, handler) is None
    await client.close()
    assert transport.requests == []


@pytest.mark.anyio
async def test_endpoint_bounces_post_on_configured_path(telegram) -> None:
    _transport, client = telegram
    seen: list[str] = []

    async def handler() -> None:
        seen.append(capabilities.last_event().text)

    endpoint = make_telegram_endpoint(TOKEN, "/tg", handler, client=client)
    await endpoint.handler({"message": {"chat": {"id": 1}, "text": "ping"}})
    assert await endpoint.handler(["not", "an", "update"]) is None
    await client.close()

    assert endpoint.bounce is True
    assert seen == ["ping"]


@pytest.mark.anyio
async def test_api_error_payload_raises_permanent_error(recording_transport) -> None:
    transport = recording_transport(
        lambda _request: httpx.Response(
            200, json={"ok": False, "error_code": 403, "description": "blocked"}
        )
    )
    client = TelegramBotClient(TOKEN, client=transport.client())

    with pytest.raises(ChannelPermanentError, match="blocked"):
        await client.send_message(1, "hi")
    await client.close()
    assert len(transport.requests) == 1


@pytest.mark.anyio
async def test_progress_bar_edits_only_when_rendering_changes(telegram) -> None:
    transport, client = telegram

    update = await TelegramProgressBar(client, 5, "Working").start()
    await update(0.0)
    await update(0.5)
    await update(0.501)
    await update(1.0)
    await client.close()

    calls = _calls(transport)
    assert [method for method, _ in calls] == [
        "sendMessage",
        "editMessageText",
        "editMessageText",
    ]
    assert calls[1][1]["text"] == render_progress("Working", 0.5)
    assert calls[2][1]["message_id"] == 42
    assert "parse_mode" not in calls[2][1]


@pytest.mark.anyio
async def test_spinner_cycles_frames_then_reports_done(telegram) -> None:
    transport, client = telegram

    stop = await TelegramSpinner(client, 5, "Thinking", interval_seconds=0.01).start()
    await asyncio.sleep(0.05)
    await stop()
    await client.close()

    calls = _calls(transport)
    assert calls[0][0] == "sendMessage"
    assert calls[0][1]["text"].startswith("Thinking ")
    edits = [body["text"] for method, body in calls if method == "editMessageText"]
    assert len(edits) >= 2
    assert edits[-1] == "Thinking done."
