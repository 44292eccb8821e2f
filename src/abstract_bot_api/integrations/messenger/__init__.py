from .adapter import (
    handle_messenger_update,
    messenger_attachments,
    messenger_text,
    messenger_verification_endpoint,
    messenger_webhook_endpoint,
)
from .client import MessengerClient

__all__ = [
    "MessengerClient",
    "handle_messenger_update",
    "messenger_attachments",
    "messenger_text",
    "messenger_verification_endpoint",
    "messenger_webhook_endpoint",
]
