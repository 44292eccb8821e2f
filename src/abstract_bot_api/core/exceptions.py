"""Error hierarchy shared by the injection core, the bouncer and channel adapters.

Transient vs permanent classification drives the outbound retry decorator in
`core.retry`; everything else is plain propagation.
"""

from __future__ import annotations

from typing import Optional


class AbstractBotError(Exception):
    """Base error for the package."""

    recoverable: bool = False
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(AbstractBotError):
    """Failure that may succeed when retried (network, rate limit, 5xx)."""

    recoverable = True
    severity = "warning"


class PermanentError(AbstractBotError):
    """Failure that will not succeed on retry (validation, auth, config)."""

    recoverable = False
    severity = "error"


class NoContextError(AbstractBotError):
    """A capability was read outside of any scope that provides it."""


class PayloadParseError(AbstractBotError):
    """Inbound HTTP body could not be parsed into a payload."""


class ConfigError(PermanentError):
    """Invalid or missing configuration."""


class ChannelAPIError(AbstractBotError):
    """Outbound call to a chat platform failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.status_code = status_code


class ChannelTransientError(ChannelAPIError, TransientError):
    """Retryable platform failure."""


class ChannelPermanentError(ChannelAPIError, PermanentError):
    """Non-retryable platform failure."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity


def channel_error_for_status(
    platform: str, status_code: int, body_preview: str
) -> ChannelAPIError:
    message = f"{platform} API request failed: status={status_code} body={body_preview!r}"
    if status_code == 429 or 500 <= status_code < 600:
        return ChannelTransientError(message, status_code=status_code)
    return ChannelPermanentError(message, status_code=status_code)
