"""Telegram webhook adapter: Bot API updates in, ambient capabilities out."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Mapping, Optional

from ...core import capabilities
from ...core.capabilities import ProgressUpdate, StopSpinner, TaskHandler
from ...core.context import Injector, compose
from ...core.exceptions import ChannelAPIError
from ...core.logging_utils import log_event
from ...surfaces.web.endpoints import Endpoint, path_endpoint
from ..chat.formatting import chunk_text, extract_video_tag
from ..chat.models import (
    Contact,
    ConversationEvent,
    EditEvent,
    ImageReply,
    InlineAttachment,
    MediaAttachment,
    MessageEvent,
)
from .client import TelegramBotClient

logger = logging.getLogger(__name__)

TELEGRAM_MEDIUM = "telegram"
TELEGRAM_FILE_LIMIT_MB = 50
TELEGRAM_MESSAGE_LIMIT = 4096
PROGRESS_BAR_CELLS = 20
SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
SPINNER_INTERVAL_SECONDS = 0.5

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "wav": "audio/wav",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "zip": "application/zip",
    "json": "application/json",
    "xml": "application/xml",
    "csv": "text/csv",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}


def mime_type_for_path(file_path: str) -> str:
    extension = file_path.rsplit(".", 1)[-1].lower() if "." in file_path else ""
    return MIME_TYPES.get(extension, "application/octet-stream")


def best_phone_from_contact(contact: Mapping[str, Any]) -> str:
    """Prefer a preferred cellphone from the vCard, then any cellphone."""
    phone = str(contact.get("phone_number") or "")
    vcard = contact.get("vcard")
    if not vcard:
        return phone
    lines = str(vcard).splitlines()
    for prefixes in (
        ("TEL;CELL;PREF", "TEL;MOBILE;PREF"),
        ("TEL;CELL", "TEL;MOBILE"),
    ):
        for line in lines:
            if line.startswith(prefixes) and ":" in line:
                return line.split(":", 1)[1].strip()
    return phone


def contact_full_name(contact: Mapping[str, Any]) -> str:
    first = str(contact.get("first_name") or "")
    last = contact.get("last_name")
    return f"{first} {last}" if last else first


async def _inline_attachment(
    client: TelegramBotClient,
    file_id: str,
    *,
    mime_type: Optional[str] = None,
    caption: Optional[str] = None,
) -> InlineAttachment:
    file_path = await client.get_file_path(file_id)
    data = await client.download_file(file_path)
    return InlineAttachment(
        mime_type=mime_type or mime_type_for_path(file_path),
        data_base64=base64.b64encode(data).decode("ascii"),
        caption=caption,
    )


def _message_text(message: Mapping[str, Any]) -> Optional[str]:
    text = message.get("text")
    links = [
        str(entity["url"])
        for entity in message.get("entities") or []
        if entity.get("type") == "text_link" and entity.get("url")
    ]
    if not links:
        return text
    return "\n".join([text, *links]) if text else "\n".join(links)


async def telegram_normalize_event(
    client: TelegramBotClient, message: Mapping[str, Any], *, edited: bool = False
) -> ConversationEvent:
    attachments: list[MediaAttachment] = []
    photos = message.get("photo")
    if photos:
        largest = max(photos, key=lambda size: size.get("width", 0))
        attachments.append(
            await _inline_attachment(
                client, largest["file_id"], caption=message.get("caption")
            )
        )
    for key in ("voice", "document"):
        media = message.get(key)
        if media:
            attachments.append(
                await _inline_attachment(
                    client, media["file_id"], mime_type=media.get("mime_type")
                )
            )

    contact: Optional[Contact] = None
    own_phone: Optional[str] = None
    shared = message.get("contact")
    if shared:
        contact = Contact(
            phone=best_phone_from_contact(shared), name=contact_full_name(shared)
        )
        sender_id = (message.get("from") or {}).get("id")
        if sender_id is not None and shared.get("user_id") == sender_id:
            own_phone = shared.get("phone_number")

    text = _message_text(message)
    if edited:
        return EditEvent(
            on_message_id=str(message["message_id"]),
            text=text,
            attachments=tuple(attachments),
            contact=contact,
            own_phone=own_phone,
        )
    return MessageEvent(
        text=text,
        attachments=tuple(attachments),
        contact=contact,
        own_phone=own_phone,
    )


def render_progress(text: str, fraction: float, cells: int = PROGRESS_BAR_CELLS) -> str:
    fraction = min(max(fraction, 0.0), 1.0)
    filled = round(fraction * cells)
    bar = "▓" * filled + "░" * (cells - filled)
    return f"{text} [{bar}] {round(fraction * 100)}%"


class TelegramProgressBar:
    """One message edited in place; edits only when the rendered text changes."""

    def __init__(self, client: TelegramBotClient, chat_id: int, text: str) -> None:
        self._client = client
        self._chat_id = chat_id
        self._text = text
        self._shown = render_progress(text, 0)
        self._message_id: Optional[str] = None
        self._lock = asyncio.Lock()

    async def start(self) -> ProgressUpdate:
        self._message_id = await self._client.send_message(self._chat_id, self._shown)
        return self.update

    async def update(self, fraction: float) -> None:
        async with self._lock:
            rendered = render_progress(self._text, fraction)
            if rendered == self._shown or self._message_id is None:
                return
            self._shown = rendered
            await self._client.edit_message_text(
                self._chat_id, self._message_id, rendered, html=False
            )


class TelegramSpinner:
    """Cycles braille frames on one message until stopped, then writes `done.`"""

    def __init__(
        self,
        client: TelegramBotClient,
        chat_id: int,
        text: str,
        *,
        interval_seconds: float = SPINNER_INTERVAL_SECONDS,
    ) -> None:
        self._client = client
        self._chat_id = chat_id
        self._text = text
        self._interval = interval_seconds
        self._finished = asyncio.Event()
        self._message_id: Optional[str] = None
        self._task: Optional[asyncio.Task[None]] = None

    async def start(self) -> StopSpinner:
        self._message_id = await self._client.send_message(
            self._chat_id, f"{self._text} {SPINNER_FRAMES[0]}"
        )
        self._task = asyncio.create_task(self._spin())
        return self.stop

    async def _spin(self) -> None:
        frame = 0
        while not self._finished.is_set():
            try:
                await asyncio.wait_for(self._finished.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if self._finished.is_set():
                return
            frame = (frame + 1) % len(SPINNER_FRAMES)
            try:
                await self._client.edit_message_text(
                    self._chat_id,
                    str(self._message_id),
                    f"{self._text} {SPINNER_FRAMES[frame]}",
                    html=False,
                )
            except ChannelAPIError as exc:
                # "message is not modified" and friends; frames are cosmetic.
                log_event(logger, logging.DEBUG, "telegram.spinner.frame_failed", exc=exc)

    async def stop(self) -> None:
        self._finished.set()
        if self._task is not None:
            await self._task
        await self._client.edit_message_text(
            self._chat_id, str(self._message_id), f"{self._text} done.", html=False
        )


def telegram_inject_deps(client: TelegramBotClient, chat_id: int) -> Injector:
    """Capability implementations bound to one Telegram chat."""

    async def reply(text: str) -> str:
        video = extract_video_tag(text)
        message_id = ""
        body = video.remaining_text if video else text
        for chunk in chunk_text(body, max_len=TELEGRAM_MESSAGE_LIMIT):
            message_id = await client.send_message(chat_id, chunk)
        if video:
            message_id = await client.send_video(chat_id, video.video_url)
        return message_id

    async def reply_image(image: ImageReply) -> str:
        if image.link is not None:
            return await client.send_photo_url(chat_id, image.link, caption=image.caption)
        data, mime_type = image.decoded()
        return await client.send_photo_bytes(
            chat_id, data, mime_type=mime_type, caption=image.caption
        )

    async def send_file(url: str) -> None:
        if ".gif" in url:
            await client.send_animation(chat_id, url)
        else:
            await client.send_video(chat_id, url)

    async def edit_message(message_id: str, text: str) -> None:
        await client.edit_message_text(chat_id, message_id, text)

    async def progress_bar(text: str) -> ProgressUpdate:
        return await TelegramProgressBar(client, chat_id, text).start()

    async def spinner(text: str) -> StopSpinner:
        return await TelegramSpinner(client, chat_id, text).start()

    async def typing() -> None:
        await client.send_chat_action(chat_id, "typing")

    return compose(
        capabilities.medium.provide(TELEGRAM_MEDIUM),
        capabilities.user_id.provide(str(chat_id)),
        capabilities.file_limit_mb.provide(TELEGRAM_FILE_LIMIT_MB),
        capabilities.send_file.inject(send_file),
        capabilities.reply.inject(reply),
        capabilities.reply_image.inject(reply_image),
        capabilities.edit_message.inject(edit_message),
        capabilities.progress_bar.inject(progress_bar),
        capabilities.spinner.inject(spinner),
        capabilities.typing_indicator.inject(typing),
    )


async def handle_telegram_update(
    client: TelegramBotClient, update: Mapping[str, Any], task_handler: TaskHandler
) -> Any:
    edited = update.get("message") is None and update.get("edited_message") is not None
    message = update.get("message") or update.get("edited_message")
    if not message:
        log_event(
            logger,
            logging.DEBUG,
            "telegram.update.ignored",
            update_id=update.get("update_id"),
        )
        return None
    event = await telegram_normalize_event(client, message, edited=edited)
    chat_id = (message.get("from") or message.get("chat") or {})["id"]
    log_event(
        logger,
        logging.INFO,
        "telegram.update.received",
        update_id=update.get("update_id"),
        kind=event.kind,
    )
    return await compose(
        telegram_inject_deps(client, chat_id),
        capabilities.last_event.provide(event),
    )(task_handler)()


def make_telegram_endpoint(
    token: str,
    path: str,
    task_handler: TaskHandler,
    *,
    client: Optional[TelegramBotClient] = None,
) -> Endpoint:
    """Bounced `POST path` endpoint for Telegram webhook updates."""
    bot = client or TelegramBotClient(token)

    async def handle(update: Any) -> Any:
        if not isinstance(update, Mapping):
            return None
        return await handle_telegram_update(bot, update, task_handler)

    return path_endpoint("POST", path, handle, bounce=True)
