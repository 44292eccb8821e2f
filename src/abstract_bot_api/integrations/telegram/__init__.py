from .adapter import make_telegram_endpoint, telegram_inject_deps, telegram_normalize_event
from .client import TelegramBotClient

__all__ = [
    "TelegramBotClient",
    "make_telegram_endpoint",
    "telegram_inject_deps",
    "telegram_normalize_event",
]
