"""The fixed set of ambient capabilities a task handler can use.

Defaults either log (so a handler can be exercised without any channel) or
raise `NoContextError` where there is no safe value to invent.
"""

from __future__ import annotations

import functools
import logging
import math
import uuid
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from .context import Capability, declare
from .exceptions import NoContextError
from .logging_utils import log_event

if TYPE_CHECKING:
    from ..integrations.chat.models import ConversationEvent, ImageReply

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressUpdate = Callable[[float], Awaitable[None]]
StopSpinner = Callable[[], Awaitable[None]]
TaskHandler = Callable[[], Awaitable[Any]]


def _missing(what: str) -> Callable[..., Any]:
    def read(*_args: Any, **_kwargs: Any) -> Any:
        raise NoContextError(f"no {what} in context")

    return read


async def _default_reply(text: str) -> str:
    log_event(logger, logging.INFO, "capability.reply", text=text)
    return str(uuid.uuid4())


async def _default_reply_image(image: "ImageReply") -> str:
    log_event(
        logger,
        logging.INFO,
        "capability.reply_image",
        link=image.link,
        caption=image.caption,
    )
    return str(uuid.uuid4())


async def _default_send_file(url: str) -> None:
    log_event(logger, logging.INFO, "capability.send_file", url=url)


async def _default_progress_bar(text: str) -> ProgressUpdate:
    async def update(fraction: float) -> None:
        log_event(
            logger,
            logging.INFO,
            "capability.progress",
            text=text,
            percent=round(fraction * 100),
        )

    return update


async def _default_spinner(text: str) -> StopSpinner:
    log_event(logger, logging.INFO, "capability.spinner", text=text)

    async def stop() -> None:
        return None

    return stop


async def _default_typing() -> None:
    log_event(logger, logging.DEBUG, "capability.typing")


reply: Capability[Callable[[str], Awaitable[str]]] = declare("reply", _default_reply)
reply_image: Capability[Callable[["ImageReply"], Awaitable[str]]] = declare(
    "reply_image", _default_reply_image
)
send_file: Capability[Callable[[str], Awaitable[None]]] = declare(
    "send_file", _default_send_file
)
progress_bar: Capability[Callable[[str], Awaitable[ProgressUpdate]]] = declare(
    "progress_bar", _default_progress_bar
)
spinner: Capability[Callable[[str], Awaitable[StopSpinner]]] = declare(
    "spinner", _default_spinner
)
typing_indicator: Capability[Callable[[], Awaitable[None]]] = declare(
    "typing", _default_typing
)
edit_message: Capability[Callable[[str, str], Awaitable[None]]] = declare(
    "edit_message", _missing("message editing")
)

user_id: Capability[Callable[[], str]] = declare("user_id", _missing("user ID"))
medium: Capability[Callable[[], str]] = declare("medium", _missing("medium"))
last_event: Capability[Callable[[], "ConversationEvent"]] = declare(
    "last_event", _missing("event")
)
bot_phone: Capability[Callable[[], Optional[str]]] = declare(
    "bot_phone", lambda: None
)
message_id: Capability[Callable[[], str]] = declare("message_id", lambda: "")
reference_id: Capability[Callable[[], str]] = declare("reference_id", lambda: "")
url: Capability[Callable[[], str]] = declare("url", lambda: "")
file_limit_mb: Capability[Callable[[], float]] = declare(
    "file_limit_mb", lambda: math.inf
)

ALL_CAPABILITIES: tuple[Capability[Any], ...] = (
    reply,
    reply_image,
    send_file,
    progress_bar,
    spinner,
    typing_indicator,
    edit_message,
    user_id,
    medium,
    last_event,
    bot_phone,
    message_id,
    reference_id,
    url,
    file_limit_mb,
)


def with_spinner(
    text: str, func: Callable[..., Awaitable[T]]
) -> Callable[..., Awaitable[T]]:
    """Run `func` while the ambient spinner shows `text`."""

    @functools.wraps(func)
    async def run(*args: Any, **kwargs: Any) -> T:
        stop = await spinner.access(text)
        try:
            return await func(*args, **kwargs)
        finally:
            await stop()

    return run
