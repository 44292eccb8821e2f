"""Channel-agnostic chat bots.

Task handlers read ambient capabilities (`reply`, `user_id`, `last_event`, ...)
that each channel adapter installs for the duration of one inbound message.
The HTTP bouncer acknowledges webhooks immediately and runs slow handlers
through a self-addressed deferred request.
"""

__version__ = "0.1.0"

from .core.capabilities import (
    bot_phone,
    edit_message,
    file_limit_mb,
    last_event,
    medium,
    message_id,
    progress_bar,
    reference_id,
    reply,
    reply_image,
    send_file,
    spinner,
    typing_indicator,
    url,
    user_id,
    with_spinner,
)
from .core.context import Capability, Injector, compose, declare
from .core.exceptions import NoContextError, PayloadParseError
from .integrations.chat.models import (
    Contact,
    ConversationEvent,
    EditEvent,
    FileAttachment,
    ImageReply,
    InlineAttachment,
    MessageEvent,
    ReactionEvent,
)
from .surfaces.web.app import create_bouncer_app
from .surfaces.web.endpoints import Endpoint, path_endpoint, static_file_endpoint
from .surfaces.web.runner import BouncerServer, start_server

__all__ = [
    "BouncerServer",
    "Capability",
    "Contact",
    "ConversationEvent",
    "EditEvent",
    "Endpoint",
    "FileAttachment",
    "ImageReply",
    "InlineAttachment",
    "Injector",
    "MessageEvent",
    "NoContextError",
    "PayloadParseError",
    "ReactionEvent",
    "bot_phone",
    "compose",
    "create_bouncer_app",
    "declare",
    "edit_message",
    "file_limit_mb",
    "last_event",
    "medium",
    "message_id",
    "path_endpoint",
    "progress_bar",
    "reference_id",
    "reply",
    "reply_image",
    "send_file",
    "spinner",
    "start_server",
    "static_file_endpoint",
    "typing_indicator",
    "url",
    "user_id",
    "with_spinner",
]
