from __future__ import annotations

import logging

from .core.capabilities import TaskHandler
from .core.config import BouncerConfig
from .core.exceptions import ConfigError
from .core.logging_utils import log_event
from .integrations.forward_email import make_forward_email_endpoint
from .integrations.green_api import GreenCredentials, make_green_api_endpoint
from .integrations.messenger.adapter import (
    messenger_verification_endpoint,
    messenger_webhook_endpoint,
)
from .integrations.telegram.adapter import make_telegram_endpoint
from .integrations.whatsapp.adapter import (
    whatsapp_business_endpoint,
    whatsapp_verification_endpoint,
)
from .surfaces.web.endpoints import Endpoint

logger = logging.getLogger(__name__)


def _require(value: str | None, what: str) -> str:
    if not value:
        raise ConfigError(f"{what} is not set")
    return value


def endpoints_from_config(
    config: BouncerConfig, task_handler: TaskHandler
) -> list[Endpoint]:
    """One endpoint set per configured channel, all routed to `task_handler`."""
    endpoints: list[Endpoint] = []
    if config.telegram is not None:
        token = _require(config.telegram.token, f"telegram token ({config.telegram.token_env})")
        endpoints.append(make_telegram_endpoint(token, config.telegram.path, task_handler))
    if config.whatsapp is not None:
        whatsapp = config.whatsapp
        if whatsapp.verify_token:
            endpoints.append(
                whatsapp_verification_endpoint(whatsapp.verify_token, whatsapp.path)
            )
        endpoints.append(
            whatsapp_business_endpoint(
                _require(whatsapp.access_token, "whatsapp access token"),
                whatsapp.path,
                task_handler,
            )
        )
    if config.messenger is not None:
        messenger = config.messenger
        if messenger.verify_token:
            endpoints.append(
                messenger_verification_endpoint(messenger.verify_token, messenger.path)
            )
        endpoints.append(
            messenger_webhook_endpoint(
                _require(messenger.access_token, "messenger access token"),
                messenger.path,
                task_handler,
            )
        )
    if config.green_api is not None:
        credentials = GreenCredentials(
            id_instance=_require(config.green_api.id_instance, "green_api idInstance"),
            api_token_instance=_require(
                config.green_api.api_token_instance, "green_api apiTokenInstance"
            ),
        )
        endpoints.append(
            make_green_api_endpoint(credentials, config.green_api.path, task_handler)
        )
    if config.forward_email is not None:
        endpoints.append(
            make_forward_email_endpoint(
                _require(config.forward_email.api_key, "forward_email api key"),
                config.forward_email.from_email,
                config.forward_email.path,
                task_handler,
            )
        )
    log_event(
        logger,
        logging.INFO,
        "channels.configured",
        count=len(endpoints),
        telegram=config.telegram is not None,
        whatsapp=config.whatsapp is not None,
        messenger=config.messenger is not None,
        green_api=config.green_api is not None,
        forward_email=config.forward_email is not None,
    )
    return endpoints
