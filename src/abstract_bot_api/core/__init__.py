"""Ambient capability registry and the error, logging, retry and config plumbing."""

from .context import Capability, Injector, compose, declare
from .exceptions import (
    AbstractBotError,
    ChannelAPIError,
    ChannelPermanentError,
    ChannelTransientError,
    ConfigError,
    NoContextError,
    PayloadParseError,
)

__all__ = [
    "AbstractBotError",
    "Capability",
    "ChannelAPIError",
    "ChannelPermanentError",
    "ChannelTransientError",
    "ConfigError",
    "Injector",
    "NoContextError",
    "PayloadParseError",
    "compose",
    "declare",
]
