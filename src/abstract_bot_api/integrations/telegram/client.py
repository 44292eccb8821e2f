from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ...core.exceptions import ChannelPermanentError, channel_error_for_status
from ..chat.formatting import sanitize_telegram_html
from ..chat.platform_client import DEFAULT_TIMEOUT_SECONDS, PlatformClient

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE_URL = "https://api.telegram.org"


class TelegramBotClient(PlatformClient):
    """The slice of the Telegram Bot API the adapter needs."""

    platform = "telegram"

    def __init__(
        self,
        token: str,
        *,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        root = base_url.rstrip("/")
        super().__init__(
            base_url=f"{root}/bot{token}",
            timeout_seconds=timeout_seconds,
            client=client,
        )
        self._file_base_url = f"{root}/file/bot{token}"

    async def _call(self, method: str, **kwargs: Any) -> Any:
        payload = await self._request_json("POST", method, **kwargs)
        if not isinstance(payload, dict) or not payload.get("ok", False):
            code = payload.get("error_code", 400) if isinstance(payload, dict) else 400
            description = payload.get("description", "") if isinstance(payload, dict) else ""
            raise channel_error_for_status(self.platform, int(code), str(description))
        return payload.get("result")

    @staticmethod
    def _message_id(result: Any) -> str:
        if not isinstance(result, dict) or "message_id" not in result:
            raise ChannelPermanentError("telegram response is missing message_id")
        return str(result["message_id"])

    async def send_message(self, chat_id: int | str, text: str) -> str:
        result = await self._call(
            "sendMessage",
            json={
                "chat_id": chat_id,
                "text": sanitize_telegram_html(text),
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        return self._message_id(result)

    async def edit_message_text(
        self, chat_id: int | str, message_id: int | str, text: str, *, html: bool = True
    ) -> None:
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": int(message_id),
            "text": sanitize_telegram_html(text) if html else text,
        }
        if html:
            payload["parse_mode"] = "HTML"
        await self._call("editMessageText", json=payload)

    async def send_chat_action(self, chat_id: int | str, action: str = "typing") -> None:
        await self._call("sendChatAction", json={"chat_id": chat_id, "action": action})

    async def send_video(
        self, chat_id: int | str, video_url: str, *, caption: Optional[str] = None
    ) -> str:
        payload: dict[str, Any] = {"chat_id": chat_id, "video": video_url}
        if caption:
            payload["caption"] = caption
        return self._message_id(await self._call("sendVideo", json=payload))

    async def send_animation(self, chat_id: int | str, animation_url: str) -> str:
        result = await self._call(
            "sendAnimation", json={"chat_id": chat_id, "animation": animation_url}
        )
        return self._message_id(result)

    async def send_photo_url(
        self, chat_id: int | str, photo_url: str, *, caption: Optional[str] = None
    ) -> str:
        payload: dict[str, Any] = {"chat_id": chat_id, "photo": photo_url}
        if caption:
            payload["caption"] = caption
        return self._message_id(await self._call("sendPhoto", json=payload))

    async def send_photo_bytes(
        self,
        chat_id: int | str,
        data: bytes,
        *,
        filename: str = "image.jpg",
        mime_type: str = "image/jpeg",
        caption: Optional[str] = None,
    ) -> str:
        form: dict[str, Any] = {"chat_id": str(chat_id)}
        if caption:
            form["caption"] = caption
        result = await self._call(
            "sendPhoto", data=form, files={"photo": (filename, data, mime_type)}
        )
        return self._message_id(result)

    async def send_document(
        self, chat_id: int | str, data: bytes, *, filename: str
    ) -> str:
        result = await self._call(
            "sendDocument",
            data={"chat_id": str(chat_id)},
            files={"document": (filename, data)},
        )
        return self._message_id(result)

    async def get_file_path(self, file_id: str) -> str:
        result = await self._call("getFile", json={"file_id": file_id})
        if not isinstance(result, dict) or not result.get("file_path"):
            raise ChannelPermanentError(f"telegram could not resolve file {file_id}")
        return str(result["file_path"])

    async def download_file(self, file_path: str) -> bytes:
        response = await self._send("GET", f"{self._file_base_url}/{file_path}")
        return response.content

    async def set_webhook(self, url: str) -> None:
        await self._call("setWebhook", json={"url": url})
