from __future__ import annotations

import pytest

from abstract_bot_api.channels import endpoints_from_config
from abstract_bot_api.core.config import BouncerConfig, ConfigError
from abstract_bot_api.surfaces.web.endpoints import Address


async def _handler() -> None:
    return None


def _config(**sections) -> BouncerConfig:
    return BouncerConfig.from_raw(
        {"domain": "https://bot.example.com", **sections},
        env={
            "TELEGRAM_TOKEN": "123:abc",
            "WHATSAPP_ACCESS_TOKEN": "wa",
            "WHATSAPP_VERIFICATION_TOKEN": "wa-verify",
            "MESSENGER_ACCESS_TOKEN": "fb",
            "GREEN_API_ID_INSTANCE": "1101",
            "GREEN_API_TOKEN_INSTANCE": "green",
            "FORWARD_EMAIL_API_KEY": "mail",
        },
    )


def test_no_channels_means_no_endpoints() -> None:
    assert endpoints_from_config(_config(), _handler) == []


def test_each_configured_channel_gets_endpoints_on_its_path() -> None:
    config = _config(
        telegram={"path": "/tg"},
        whatsapp={"path": "/wa"},
        messenger={"path": "/fb"},
        green_api={"path": "/green"},
        forward_email={"path": "/mail", "from_email": "bot@example.com"},
    )

    endpoints = endpoints_from_config(config, _handler)

    def accepting(method: str, url: str) -> list:
        address = Address(method=method, url=url)
        return [endpoint for endpoint in endpoints if endpoint.predicate(address)]

    for path in ("/tg", "/wa", "/fb", "/green", "/mail"):
        (post,) = accepting("POST", path)
        assert post.bounce is True
    (verify,) = accepting("GET", "/wa")
    assert verify.bounce is False
    assert accepting("GET", "/fb") == []


def test_missing_channel_secret_is_a_config_error() -> None:
    config = BouncerConfig.from_raw(
        {"domain": "https://bot.example.com", "telegram": {}}, env={}
    )

    with pytest.raises(ConfigError, match="TELEGRAM_TOKEN"):
        endpoints_from_config(config, _handler)
