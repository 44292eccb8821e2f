"""WhatsApp Business Cloud webhook adapter."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional

from ...core import capabilities
from ...core.capabilities import StopSpinner, TaskHandler
from ...core.context import Injector, compose
from ...core.exceptions import ChannelAPIError
from ...core.logging_utils import log_event
from ...surfaces.web.endpoints import Endpoint, path_endpoint
from ..chat.formatting import chunk_text
from ..chat.graph_api import graph_verification_endpoint
from ..chat.models import (
    Contact,
    ConversationEvent,
    ImageReply,
    InlineAttachment,
    MessageEvent,
    ReactionEvent,
)
from .client import WhatsAppCloudClient

logger = logging.getLogger(__name__)

WHATSAPP_MEDIUM = "whatsapp"
WHATSAPP_FILE_LIMIT_MB = 100
WHATSAPP_MESSAGE_LIMIT = 4096
MEDIA_TYPES = ("image", "audio", "video", "document", "sticker", "voice")

_EXTENSION_KINDS = {
    "mp4": "video",
    "3gp": "video",
    "mov": "video",
    "jpg": "image",
    "jpeg": "image",
    "png": "image",
    "webp": "image",
    "mp3": "audio",
    "ogg": "audio",
    "m4a": "audio",
    "aac": "audio",
    "amr": "audio",
}


@dataclass(frozen=True)
class InboundWhatsAppMessage:
    phone_number_id: str
    display_phone_number: Optional[str]
    message: Mapping[str, Any]


def iter_whatsapp_messages(payload: Any) -> Iterator[InboundWhatsAppMessage]:
    """Every user message in a webhook delivery; status-only changes yield nothing."""
    if not isinstance(payload, Mapping):
        return
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            for message in value.get("messages") or []:
                yield InboundWhatsAppMessage(
                    phone_number_id=str(metadata.get("phone_number_id", "")),
                    display_phone_number=metadata.get("display_phone_number"),
                    message=message,
                )


def _shared_contact(message: Mapping[str, Any]) -> tuple[Optional[Contact], Optional[str]]:
    contacts = message.get("contacts") or []
    if not contacts:
        return None, None
    shared = contacts[0]
    phones = shared.get("phones") or []
    if not phones:
        return None, None
    phone = phones[0]
    name = (shared.get("name") or {}).get("formatted_name", "")
    contact = Contact(phone=str(phone.get("phone", "")), name=str(name))
    own_phone = contact.phone if phone.get("wa_id") == message.get("from") else None
    return contact, own_phone


def _interactive_text(message: Mapping[str, Any]) -> Optional[str]:
    if message.get("type") == "button":
        return (message.get("button") or {}).get("text")
    interactive = message.get("interactive") or {}
    for key in ("button_reply", "list_reply"):
        reply = interactive.get(key)
        if reply:
            return reply.get("title")
    return None


async def whatsapp_normalize_message(
    client: WhatsAppCloudClient, message: Mapping[str, Any]
) -> ConversationEvent:
    kind = message.get("type")
    if kind == "reaction":
        reaction = message.get("reaction") or {}
        return ReactionEvent(
            on_message_id=str(reaction.get("message_id", "")),
            reaction=str(reaction.get("emoji", "")),
        )
    if kind == "text":
        return MessageEvent(text=(message.get("text") or {}).get("body"))
    if kind in MEDIA_TYPES:
        media = message.get(kind) or {}
        info = await client.media_info(str(media["id"]))
        data = await client.download_media(str(info["url"]))
        attachment = InlineAttachment(
            mime_type=str(media.get("mime_type") or info.get("mime_type") or "application/octet-stream"),
            data_base64=base64.b64encode(data).decode("ascii"),
            caption=media.get("caption"),
        )
        return MessageEvent(text=media.get("caption"), attachments=(attachment,))
    if kind == "contacts":
        contact, own_phone = _shared_contact(message)
        return MessageEvent(contact=contact, own_phone=own_phone)
    return MessageEvent(text=_interactive_text(message))


def _file_kind(url: str) -> str:
    path = url.split("?", 1)[0]
    extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return _EXTENSION_KINDS.get(extension, "document")


def whatsapp_inject_deps(
    client: WhatsAppCloudClient,
    *,
    phone_number_id: str,
    user: str,
    message_id: str,
    bot_phone: Optional[str] = None,
    reference_id: Optional[str] = None,
) -> Injector:
    async def reply(text: str) -> str:
        sent = ""
        for chunk in chunk_text(text, max_len=WHATSAPP_MESSAGE_LIMIT):
            sent = await client.send_text(phone_number_id, user, chunk)
        return sent

    async def reply_image(image: ImageReply) -> str:
        if image.link is not None:
            return await client.send_media_link(
                phone_number_id, user, "image", image.link, caption=image.caption
            )
        data, mime_type = image.decoded()
        media_id = await client.upload_media(
            phone_number_id, data, mime_type, filename="image"
        )
        return await client.send_media_id(
            phone_number_id, user, "image", media_id, caption=image.caption
        )

    async def send_file(url: str) -> None:
        await client.send_media_link(phone_number_id, user, _file_kind(url), url)

    async def spinner(text: str) -> StopSpinner:
        await reply(text)

        async def stop() -> None:
            return None

        return stop

    async def typing() -> None:
        try:
            await client.mark_read_with_typing(phone_number_id, message_id)
        except ChannelAPIError as exc:
            log_event(logger, logging.WARNING, "whatsapp.typing.failed", exc=exc)

    injectors = [
        capabilities.medium.provide(WHATSAPP_MEDIUM),
        capabilities.user_id.provide(user),
        capabilities.bot_phone.provide(bot_phone),
        capabilities.message_id.provide(message_id),
        capabilities.file_limit_mb.provide(WHATSAPP_FILE_LIMIT_MB),
        capabilities.reply.inject(reply),
        capabilities.reply_image.inject(reply_image),
        capabilities.send_file.inject(send_file),
        capabilities.spinner.inject(spinner),
        capabilities.typing_indicator.inject(typing),
    ]
    if reference_id:
        injectors.append(capabilities.reference_id.provide(reference_id))
    return compose(injectors)


async def handle_whatsapp_update(
    client: WhatsAppCloudClient, payload: Any, task_handler: TaskHandler
) -> None:
    for inbound in iter_whatsapp_messages(payload):
        message = inbound.message
        event = await whatsapp_normalize_message(client, message)
        log_event(
            logger,
            logging.INFO,
            "whatsapp.message.received",
            message_id=message.get("id"),
            kind=event.kind,
        )
        await compose(
            whatsapp_inject_deps(
                client,
                phone_number_id=inbound.phone_number_id,
                user=str(message.get("from", "")),
                message_id=str(message.get("id", "")),
                bot_phone=inbound.display_phone_number,
                reference_id=(message.get("context") or {}).get("id"),
            ),
            capabilities.last_event.provide(event),
        )(task_handler)()


def whatsapp_business_endpoint(
    access_token: str,
    path: str,
    task_handler: TaskHandler,
    *,
    client: Optional[WhatsAppCloudClient] = None,
) -> Endpoint:
    """Bounced `POST path` endpoint for WhatsApp Cloud webhook deliveries."""
    api = client or WhatsAppCloudClient(access_token)

    async def handle(payload: Any) -> None:
        await handle_whatsapp_update(api, payload, task_handler)

    return path_endpoint("POST", path, handle, bounce=True)


def whatsapp_verification_endpoint(verify_token: str, path: str) -> Endpoint:
    return graph_verification_endpoint(verify_token, path)
