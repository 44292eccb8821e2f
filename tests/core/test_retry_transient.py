from __future__ import annotations

import pytest

from abstract_bot_api.core.exceptions import (
    ChannelPermanentError,
    ChannelTransientError,
    channel_error_for_status,
)
from abstract_bot_api.core.retry import retry_transient


@pytest.mark.parametrize("status", [429, 500, 502, 503])
def test_rate_limits_and_server_errors_are_transient(status: int) -> None:
    error = channel_error_for_status("telegram", status, "busy")

    assert isinstance(error, ChannelTransientError)
    assert error.recoverable is True
    assert error.status_code == status


@pytest.mark.parametrize("status", [400, 401, 403, 404])
def test_client_errors_are_permanent(status: int) -> None:
    error = channel_error_for_status("whatsapp", status, "bad")

    assert isinstance(error, ChannelPermanentError)
    assert error.recoverable is False
    assert "status=" in str(error)


@pytest.mark.anyio
async def test_retry_transient_retries_until_success() -> None:
    attempts = 0

    @retry_transient(max_attempts=3, wait_seconds=0)
    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            raise ChannelTransientError("try again")
        return "ok"

    assert await flaky() == "ok"
    assert attempts == 3


@pytest.mark.anyio
async def test_retry_transient_reraises_after_last_attempt() -> None:
    attempts = 0

    @retry_transient(max_attempts=2, wait_seconds=0)
    async def always_down() -> None:
        nonlocal attempts
        attempts += 1
        raise ChannelTransientError("down")

    with pytest.raises(ChannelTransientError, match="down"):
        await always_down()
    assert attempts == 2


@pytest.mark.anyio
async def test_retry_transient_does_not_retry_permanent_errors() -> None:
    attempts = 0

    @retry_transient(max_attempts=3, wait_seconds=0)
    async def rejected() -> None:
        nonlocal attempts
        attempts += 1
        raise ChannelPermanentError("nope")

    with pytest.raises(ChannelPermanentError):
        await rejected()
    assert attempts == 1
