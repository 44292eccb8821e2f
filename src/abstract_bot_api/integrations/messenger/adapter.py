"""Facebook Messenger webhook adapter."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ...core import capabilities
from ...core.capabilities import StopSpinner, TaskHandler
from ...core.context import Injector, compose
from ...core.exceptions import ChannelAPIError
from ...core.logging_utils import log_event
from ...surfaces.web.endpoints import Endpoint, path_endpoint
from ..chat.graph_api import graph_verification_endpoint
from ..chat.models import FileAttachment, ImageReply, MessageEvent
from .client import MessengerClient

logger = logging.getLogger(__name__)

MESSENGER_MEDIUM = "facebook-messenger"

ATTACHMENT_MIME_TYPES = {
    "image": "image/jpeg",
    "video": "video/mp4",
    "audio": "audio/mpeg",
    "file": "application/octet-stream",
}


def _first_messaging(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    entries = payload.get("entry") or []
    if not entries:
        return {}
    messaging = entries[0].get("messaging") or []
    return messaging[0] if messaging else {}


def messenger_page_id(payload: Mapping[str, Any]) -> str:
    entries = payload.get("entry") or []
    return str(entries[0].get("id", "")) if entries else ""


def messenger_sender_id(payload: Mapping[str, Any]) -> str:
    return str((_first_messaging(payload).get("sender") or {}).get("id", ""))


def messenger_message_id(payload: Mapping[str, Any]) -> str:
    return str((_first_messaging(payload).get("message") or {}).get("mid", ""))


def messenger_text(payload: Mapping[str, Any]) -> str:
    """Message text, or the postback payload when a button was pressed."""
    messaging = _first_messaging(payload)
    message = messaging.get("message") or {}
    if message.get("text"):
        return str(message["text"])
    postback = messaging.get("postback")
    if postback:
        return str(postback.get("payload", ""))
    return ""


def messenger_attachments(payload: Mapping[str, Any]) -> tuple[FileAttachment, ...]:
    message = _first_messaging(payload).get("message") or {}
    attachments: list[FileAttachment] = []
    for attachment in message.get("attachments") or []:
        mime_type = ATTACHMENT_MIME_TYPES.get(attachment.get("type", ""))
        url = (attachment.get("payload") or {}).get("url")
        if mime_type and url:
            attachments.append(FileAttachment(mime_type=mime_type, file_uri=str(url)))
    return tuple(attachments)


def messenger_inject_deps(
    client: MessengerClient,
    *,
    page_id: str,
    sender_id: str,
    message_id: str,
) -> Injector:
    async def reply(text: str) -> str:
        return await client.send_text(page_id, sender_id, text)

    async def reply_image(image: ImageReply) -> str:
        return await client.send_image(page_id, sender_id, image)

    async def spinner(text: str) -> StopSpinner:
        await reply(text)

        async def stop() -> None:
            return None

        return stop

    async def typing() -> None:
        try:
            await client.send_action(page_id, sender_id, "typing_on")
        except ChannelAPIError as exc:
            log_event(logger, logging.WARNING, "messenger.typing.failed", exc=exc)

    return compose(
        capabilities.medium.provide(MESSENGER_MEDIUM),
        capabilities.message_id.provide(message_id),
        capabilities.bot_phone.provide(page_id),
        capabilities.user_id.provide(sender_id),
        capabilities.spinner.inject(spinner),
        capabilities.reply.inject(reply),
        capabilities.reply_image.inject(reply_image),
        capabilities.typing_indicator.inject(typing),
    )


async def handle_messenger_update(
    client: MessengerClient, payload: Any, task_handler: TaskHandler
) -> Any:
    if not isinstance(payload, Mapping):
        return None
    sender_id = messenger_sender_id(payload)
    text = messenger_text(payload)
    if not sender_id or not text:
        log_event(logger, logging.DEBUG, "messenger.update.ignored")
        return None
    event = MessageEvent(text=text, attachments=messenger_attachments(payload))
    message_id = messenger_message_id(payload)
    log_event(logger, logging.INFO, "messenger.message.received", message_id=message_id)
    return await compose(
        capabilities.last_event.provide(event),
        messenger_inject_deps(
            client,
            page_id=messenger_page_id(payload),
            sender_id=sender_id,
            message_id=message_id,
        ),
    )(task_handler)()


def messenger_webhook_endpoint(
    access_token: str,
    path: str,
    task_handler: TaskHandler,
    *,
    client: Optional[MessengerClient] = None,
) -> Endpoint:
    """Bounced `POST path` endpoint for Messenger page webhooks."""
    api = client or MessengerClient(access_token)

    async def handle(payload: Any) -> Any:
        return await handle_messenger_update(api, payload, task_handler)

    return path_endpoint("POST", path, handle, bounce=True)


def messenger_verification_endpoint(verify_token: str, path: str) -> Endpoint:
    return graph_verification_endpoint(verify_token, path)
