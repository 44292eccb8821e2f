"""Pieces shared by the Meta Graph API channels (WhatsApp Cloud, Messenger)."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from fastapi.responses import PlainTextResponse, Response

from ...core.exceptions import ChannelPermanentError
from ...core.logging_utils import log_event
from ...surfaces.web.endpoints import Endpoint, path_endpoint
from .platform_client import DEFAULT_TIMEOUT_SECONDS, PlatformClient

logger = logging.getLogger(__name__)

GRAPH_API_VERSION = "v24.0"
GRAPH_API_BASE_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}"


def strip_none(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class GraphAPIClient(PlatformClient):
    platform = "graph"

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = GRAPH_API_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            client=client,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def post_message(self, node_id: str, payload: dict[str, Any]) -> Any:
        return await self._request_json("POST", f"{node_id}/messages", json=payload)

    @staticmethod
    def sent_message_id(response: Any) -> str:
        if isinstance(response, dict):
            if response.get("message_id"):
                return str(response["message_id"])
            messages = response.get("messages")
            if isinstance(messages, list) and messages and messages[0].get("id"):
                return str(messages[0]["id"])
        raise ChannelPermanentError("graph response is missing a message id")


def graph_verification_endpoint(verify_token: str, path: str) -> Endpoint:
    """`GET path` answering the webhook subscription handshake.

    Replies with `hub.challenge` as plain text when `hub.mode` is `subscribe`
    and the token matches, otherwise 404.
    """

    async def verify(params: Any) -> Response:
        params = params if isinstance(params, dict) else {}
        if (
            params.get("hub.mode") == "subscribe"
            and params.get("hub.verify_token") == verify_token
        ):
            return PlainTextResponse(str(params.get("hub.challenge", "")))
        log_event(logger, logging.WARNING, "graph.webhook.verification_rejected", path=path)
        return Response(status_code=404)

    return path_endpoint("GET", path, verify)
