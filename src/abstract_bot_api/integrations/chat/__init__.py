"""Channel-independent models and helpers shared by the adapters."""

from .models import (
    Contact,
    ConversationEvent,
    EditEvent,
    FileAttachment,
    ImageReply,
    InlineAttachment,
    MediaAttachment,
    MessageEvent,
    ReactionEvent,
    event_from_dict,
    event_to_dict,
)

__all__ = [
    "Contact",
    "ConversationEvent",
    "EditEvent",
    "FileAttachment",
    "ImageReply",
    "InlineAttachment",
    "MediaAttachment",
    "MessageEvent",
    "ReactionEvent",
    "event_from_dict",
    "event_to_dict",
]
