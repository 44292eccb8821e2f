"""Email through forwardemail.net: inbound webhooks, replies via the REST API."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping, Optional

import httpx

from ..core import capabilities
from ..core.capabilities import TaskHandler
from ..core.context import Injector, compose
from ..core.exceptions import PayloadParseError
from ..core.logging_utils import log_event
from ..surfaces.web.endpoints import Endpoint, path_endpoint
from .chat.formatting import html_to_text
from .chat.models import MessageEvent
from .chat.platform_client import DEFAULT_TIMEOUT_SECONDS, PlatformClient

logger = logging.getLogger(__name__)

FORWARD_EMAIL_BASE_URL = "https://api.forwardemail.net/v1"
EMAIL_MEDIUM = "email"


class ForwardEmailClient(PlatformClient):
    platform = "forward_email"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = FORWARD_EMAIL_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            client=client,
            auth=httpx.BasicAuth(api_key, ""),
        )

    async def send_email(
        self, *, sender: str, to: str, subject: str, html: str
    ) -> None:
        await self._request_json(
            "POST",
            "emails",
            json={
                "from": sender,
                "to": to,
                "subject": subject,
                "html": html,
                "text": html_to_text(html),
                "encoding": "utf-8",
            },
        )


def _first_address(webhook: Mapping[str, Any], field: str) -> str:
    values = (webhook.get(field) or {}).get("value") or []
    if not values or not values[0].get("address"):
        raise PayloadParseError(f"email webhook has no {field} address")
    return str(values[0]["address"])


def forward_email_inject_deps(
    client: ForwardEmailClient, from_email: str, webhook: Mapping[str, Any]
) -> Injector:
    sender = _first_address(webhook, "from")
    recipient = _first_address(webhook, "to")

    async def reply(text: str) -> str:
        await client.send_email(
            sender=from_email, to=sender, subject=f"Re: {recipient}", html=text
        )
        return str(uuid.uuid4())

    return compose(
        capabilities.medium.provide(EMAIL_MEDIUM),
        capabilities.user_id.provide(sender),
        capabilities.reply.inject(reply),
    )


def make_forward_email_endpoint(
    api_key: str,
    from_email: str,
    path: str,
    task_handler: TaskHandler,
    *,
    client: Optional[ForwardEmailClient] = None,
) -> Endpoint:
    """Bounced `POST path` endpoint for forwardemail.net webhooks."""
    api = client or ForwardEmailClient(api_key)

    async def handle(webhook: Any) -> Any:
        if not isinstance(webhook, Mapping):
            raise PayloadParseError("email webhook must be a JSON object")
        injector = forward_email_inject_deps(api, from_email, webhook)
        log_event(
            logger,
            logging.INFO,
            "email.message.received",
            sender=_first_address(webhook, "from"),
        )
        event = MessageEvent(
            text=webhook.get("text") or html_to_text(webhook.get("html") or "")
        )
        return await compose(
            injector, capabilities.last_event.provide(event)
        )(task_handler)()

    return path_endpoint("POST", path, handle, bounce=True)
