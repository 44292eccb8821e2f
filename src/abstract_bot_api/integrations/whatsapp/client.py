from __future__ import annotations

from typing import Any, Optional

from ...core.exceptions import ChannelPermanentError
from ..chat.formatting import convert_to_whatsapp_format
from ..chat.graph_api import GraphAPIClient, strip_none


class WhatsAppCloudClient(GraphAPIClient):
    """WhatsApp Business Cloud API calls, scoped to one business phone number id."""

    platform = "whatsapp"

    def _envelope(self, to: str, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": kind,
            kind: body,
        }

    async def send_text(
        self,
        phone_number_id: str,
        to: str,
        text: str,
        *,
        reply_to: Optional[str] = None,
    ) -> str:
        payload = self._envelope(
            to,
            "text",
            {"body": convert_to_whatsapp_format(text), "preview_url": True},
        )
        if reply_to:
            payload["context"] = {"message_id": reply_to}
        return self.sent_message_id(await self.post_message(phone_number_id, payload))

    async def send_media_link(
        self,
        phone_number_id: str,
        to: str,
        kind: str,
        link: str,
        *,
        caption: Optional[str] = None,
    ) -> str:
        body = strip_none(
            {
                "link": link,
                "caption": convert_to_whatsapp_format(caption) if caption else None,
            }
        )
        payload = self._envelope(to, kind, body)
        return self.sent_message_id(await self.post_message(phone_number_id, payload))

    async def send_media_id(
        self,
        phone_number_id: str,
        to: str,
        kind: str,
        media_id: str,
        *,
        caption: Optional[str] = None,
    ) -> str:
        body = strip_none(
            {
                "id": media_id,
                "caption": convert_to_whatsapp_format(caption) if caption else None,
            }
        )
        payload = self._envelope(to, kind, body)
        return self.sent_message_id(await self.post_message(phone_number_id, payload))

    async def upload_media(
        self, phone_number_id: str, data: bytes, mime_type: str, *, filename: str
    ) -> str:
        response = await self._request_json(
            "POST",
            f"{phone_number_id}/media",
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, data, mime_type)},
        )
        if not isinstance(response, dict) or not response.get("id"):
            raise ChannelPermanentError("whatsapp media upload returned no id")
        return str(response["id"])

    async def mark_read_with_typing(self, phone_number_id: str, message_id: str) -> None:
        await self.post_message(
            phone_number_id,
            {
                "messaging_product": "whatsapp",
                "status": "read",
                "message_id": message_id,
                "typing_indicator": {"type": "text"},
            },
        )

    async def media_info(self, media_id: str) -> dict[str, Any]:
        response = await self._request_json("GET", media_id)
        if not isinstance(response, dict) or not response.get("url"):
            raise ChannelPermanentError(f"whatsapp media {media_id} has no url")
        return response

    async def download_media(self, media_url: str) -> bytes:
        response = await self._send("GET", media_url)
        return response.content
