"""WhatsApp through Green-API: webhook notifications in, REST calls out."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from ..core import capabilities
from ..core.capabilities import StopSpinner, TaskHandler
from ..core.context import Injector, compose
from ..core.exceptions import ChannelPermanentError
from ..core.logging_utils import log_event
from ..surfaces.web.endpoints import Endpoint, path_endpoint
from .chat.formatting import convert_to_whatsapp_format
from .chat.models import MessageEvent
from .chat.platform_client import DEFAULT_TIMEOUT_SECONDS, PlatformClient

logger = logging.getLogger(__name__)

GREEN_API_BASE_URL = "https://api.green-api.com"
GREEN_API_MEDIUM = "green-api"
GREEN_API_FILE_LIMIT_MB = 50
PHONE_SUFFIX = "@c.us"


@dataclass(frozen=True)
class GreenCredentials:
    id_instance: str
    api_token_instance: str


def strip_phone_suffix(value: str) -> str:
    return value.replace(PHONE_SUFFIX, "")


class GreenApiClient(PlatformClient):
    platform = "green_api"

    def __init__(
        self,
        credentials: GreenCredentials,
        *,
        base_url: str = GREEN_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(base_url=base_url, timeout_seconds=timeout_seconds, client=client)
        self.credentials = credentials

    def _method_path(self, method: str) -> str:
        return (
            f"waInstance{self.credentials.id_instance}/{method}/"
            f"{self.credentials.api_token_instance}"
        )

    async def _call(self, method: str, payload: dict[str, Any]) -> Any:
        return await self._request_json("POST", self._method_path(method), json=payload)

    async def send_message(self, phone: str, text: str) -> str:
        response = await self._call(
            "sendMessage",
            {"chatId": f"{phone}{PHONE_SUFFIX}", "message": convert_to_whatsapp_format(text)},
        )
        if not isinstance(response, dict) or not response.get("idMessage"):
            raise ChannelPermanentError("green_api sendMessage returned no idMessage")
        return str(response["idMessage"])

    async def send_file_by_url(
        self, phone: str, url: str, *, file_name: str = "video.mp4", caption: str = ""
    ) -> None:
        await self._call(
            "sendFileByUrl",
            {
                "chatId": f"{phone}{PHONE_SUFFIX}",
                "urlFile": url,
                "fileName": file_name,
                "caption": caption,
            },
        )

    async def set_webhook(self, webhook_url: str) -> None:
        await self._call("setSettings", {"webhookUrl": webhook_url})


def green_api_message_text(notification: Mapping[str, Any]) -> Optional[str]:
    data = notification.get("messageData") or {}
    kind = data.get("typeMessage")
    if kind in ("extendedTextMessage", "quotedMessage"):
        return (data.get("extendedTextMessageData") or {}).get("text")
    if kind == "textMessage":
        return (data.get("textMessageData") or {}).get("textMessage")
    return None


def green_api_reference_id(notification: Mapping[str, Any]) -> Optional[str]:
    quoted = (notification.get("messageData") or {}).get("quotedMessage") or {}
    return quoted.get("stanzaId")


def green_api_inject_deps(
    client: GreenApiClient,
    *,
    sender: str,
    bot_phone: str,
    message_id: str,
    reference_id: Optional[str] = None,
) -> Injector:
    async def reply(text: str) -> str:
        return await client.send_message(sender, text)

    async def send_file(url: str) -> None:
        await client.send_file_by_url(sender, url)

    async def spinner(text: str) -> StopSpinner:
        await reply(text)

        async def stop() -> None:
            return None

        return stop

    injectors = [
        capabilities.bot_phone.provide(bot_phone),
        capabilities.medium.provide(GREEN_API_MEDIUM),
        capabilities.message_id.provide(message_id),
        capabilities.file_limit_mb.provide(GREEN_API_FILE_LIMIT_MB),
        capabilities.user_id.provide(sender),
        capabilities.send_file.inject(send_file),
        capabilities.spinner.inject(spinner),
        capabilities.reply.inject(reply),
    ]
    if reference_id:
        injectors.append(capabilities.reference_id.provide(reference_id))
    return compose(injectors)


async def handle_green_api_notification(
    client: GreenApiClient, notification: Any, task_handler: TaskHandler
) -> Any:
    if not isinstance(notification, Mapping):
        return None
    if notification.get("typeWebhook", "incomingMessageReceived") != "incomingMessageReceived":
        log_event(
            logger,
            logging.DEBUG,
            "green_api.notification.ignored",
            type_webhook=notification.get("typeWebhook"),
        )
        return None
    sender = strip_phone_suffix(str((notification.get("senderData") or {}).get("sender", "")))
    bot_phone = strip_phone_suffix(str((notification.get("instanceData") or {}).get("wid", "")))
    message_id = str(notification.get("idMessage", ""))
    log_event(logger, logging.INFO, "green_api.message.received", message_id=message_id)
    return await compose(
        capabilities.last_event.provide(MessageEvent(text=green_api_message_text(notification))),
        green_api_inject_deps(
            client,
            sender=sender,
            bot_phone=bot_phone,
            message_id=message_id,
            reference_id=green_api_reference_id(notification),
        ),
    )(task_handler)()


def make_green_api_endpoint(
    credentials: GreenCredentials,
    path: str,
    task_handler: TaskHandler,
    *,
    client: Optional[GreenApiClient] = None,
) -> Endpoint:
    """Bounced `POST path` endpoint for Green-API incoming message notifications."""
    api = client or GreenApiClient(credentials)

    async def handle(notification: Any) -> Any:
        return await handle_green_api_notification(api, notification, task_handler)

    return path_endpoint("POST", path, handle, bounce=True)
