"""HTTP channel that records the conversation through a caller-supplied store."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

from ..core import capabilities
from ..core.capabilities import TaskHandler
from ..core.context import compose
from ..core.exceptions import PayloadParseError
from ..core.logging_utils import log_event
from ..surfaces.web.endpoints import Endpoint, path_endpoint
from .chat.models import MessageEvent
from .websocket import OutboundMessage, make_key, now_ms, websocket_inject

logger = logging.getLogger(__name__)

Storer = Callable[[dict[str, Any]], Awaitable[None]]


def make_database_endpoint(
    storer: Storer, task_handler: TaskHandler, path: str, bot_name: str
) -> Endpoint:
    """Bounced `POST path` taking `{"from": user, "text": ...}`.

    The inbound message is stored first; every bot output is stored as a
    record from `bot_name`.
    """

    async def handle(payload: Any) -> Any:
        if not isinstance(payload, Mapping) or not payload.get("from"):
            raise PayloadParseError("database request needs a 'from' field")
        sender = str(payload["from"])
        text = payload.get("text")
        await storer({"from": sender, "key": make_key(), "text": text, "time": now_ms()})
        log_event(logger, logging.INFO, "database.message.stored", sender=sender)

        async def store_output(message: OutboundMessage) -> None:
            await storer({**message, "time": now_ms(), "from": bot_name})

        return await compose(
            websocket_inject(store_output, sender),
            capabilities.last_event.provide(MessageEvent(text=text)),
        )(task_handler)()

    return path_endpoint("POST", path, handle, bounce=True)
