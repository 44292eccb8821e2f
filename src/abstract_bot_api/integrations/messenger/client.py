from __future__ import annotations

from typing import Any, Optional, Sequence

from ..chat.formatting import convert_html_to_facebook_format
from ..chat.graph_api import GraphAPIClient, strip_none
from ..chat.models import ImageReply

RESPONSE = "RESPONSE"


class MessengerClient(GraphAPIClient):
    """Send API calls on behalf of one Facebook page."""

    platform = "messenger"

    async def _send_to(
        self,
        page_id: str,
        recipient_id: str,
        message: dict[str, Any],
        *,
        messaging_type: str = RESPONSE,
        reply_to: Optional[str] = None,
    ) -> str:
        payload = strip_none(
            {
                "recipient": {"id": recipient_id},
                "messaging_type": messaging_type,
                "message": message,
                "reply_to": {"mid": reply_to} if reply_to else None,
            }
        )
        return self.sent_message_id(await self.post_message(page_id, payload))

    async def send_text(
        self,
        page_id: str,
        recipient_id: str,
        text: str,
        *,
        messaging_type: str = RESPONSE,
    ) -> str:
        return await self._send_to(
            page_id,
            recipient_id,
            {"text": convert_html_to_facebook_format(text)},
            messaging_type=messaging_type,
        )

    async def send_reply(
        self,
        page_id: str,
        recipient_id: str,
        message_id: str,
        text: str,
        *,
        messaging_type: str = RESPONSE,
    ) -> str:
        return await self._send_to(
            page_id,
            recipient_id,
            {"text": convert_html_to_facebook_format(text)},
            messaging_type=messaging_type,
            reply_to=message_id,
        )

    async def send_image(
        self,
        page_id: str,
        recipient_id: str,
        image: ImageReply,
        *,
        messaging_type: str = RESPONSE,
    ) -> str:
        if image.link is not None:
            attachment = {
                "type": "image",
                "payload": {"url": image.link, "is_reusable": True},
            }
        else:
            attachment = {
                "type": "image",
                "payload": {"url": image.data_url(), "is_reusable": False},
            }
        return await self._send_image_attachment(
            page_id, recipient_id, attachment, image.caption, messaging_type
        )

    async def send_saved_image(
        self,
        page_id: str,
        recipient_id: str,
        attachment_id: str,
        *,
        caption: Optional[str] = None,
        messaging_type: str = RESPONSE,
    ) -> str:
        return await self._send_image_attachment(
            page_id,
            recipient_id,
            {"attachment_id": attachment_id},
            caption,
            messaging_type,
        )

    async def _send_image_attachment(
        self,
        page_id: str,
        recipient_id: str,
        attachment: dict[str, Any],
        caption: Optional[str],
        messaging_type: str,
    ) -> str:
        message: dict[str, Any] = {"attachment": attachment}
        if caption:
            message["text"] = convert_html_to_facebook_format(caption)
        return await self._send_to(
            page_id, recipient_id, message, messaging_type=messaging_type
        )

    async def send_attachment(
        self,
        page_id: str,
        recipient_id: str,
        url: str,
        *,
        kind: str = "file",
        messaging_type: str = RESPONSE,
    ) -> str:
        return await self._send_to(
            page_id,
            recipient_id,
            {"attachment": {"type": kind, "payload": {"url": url, "is_reusable": True}}},
            messaging_type=messaging_type,
        )

    async def send_action(self, page_id: str, recipient_id: str, action: str) -> None:
        await self.post_message(
            page_id, {"recipient": {"id": recipient_id}, "sender_action": action}
        )

    async def send_button_template(
        self,
        page_id: str,
        recipient_id: str,
        text: str,
        buttons: Sequence[dict[str, Any]],
        *,
        messaging_type: str = RESPONSE,
    ) -> str:
        return await self._send_to(
            page_id,
            recipient_id,
            {
                "attachment": {
                    "type": "template",
                    "payload": {
                        "template_type": "button",
                        "text": convert_html_to_facebook_format(text),
                        "buttons": list(buttons),
                    },
                }
            },
            messaging_type=messaging_type,
        )

    async def send_quick_replies(
        self,
        page_id: str,
        recipient_id: str,
        text: str,
        quick_replies: Sequence[dict[str, Any]],
        *,
        messaging_type: str = RESPONSE,
    ) -> str:
        return await self._send_to(
            page_id,
            recipient_id,
            {
                "text": convert_html_to_facebook_format(text),
                "quick_replies": list(quick_replies),
            },
            messaging_type=messaging_type,
        )
