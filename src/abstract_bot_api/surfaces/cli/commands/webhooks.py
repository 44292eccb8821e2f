import asyncio
from pathlib import Path
from typing import Callable, Optional

import typer

from ....core.exceptions import ChannelAPIError
from ....integrations.green_api import GreenApiClient, GreenCredentials
from ....integrations.telegram.client import TelegramBotClient


def register_telegram_commands(
    telegram_app: typer.Typer,
    *,
    raise_exit: Callable,
    require_config: Callable,
    webhook_url: Callable,
) -> None:
    @telegram_app.command("set-webhook")
    def telegram_set_webhook(
        config_path: Optional[Path] = typer.Option(None, "--config", help="Path to bot.yml"),
    ) -> None:
        """Point the Telegram bot's webhook at <domain><telegram.path>."""
        config = require_config(config_path)
        if config.telegram is None:
            raise_exit("No telegram section in config.")
        if not config.telegram.token:
            raise_exit(f"{config.telegram.token_env} is not set.")
        url = webhook_url(config, config.telegram.path)

        async def _run() -> None:
            async with TelegramBotClient(config.telegram.token) as client:
                await client.set_webhook(url)

        try:
            asyncio.run(_run())
        except ChannelAPIError as exc:
            raise_exit(f"Telegram rejected the webhook: {exc}", cause=exc)
        typer.echo(f"Telegram webhook set to {url}")


def register_green_api_commands(
    green_api_app: typer.Typer,
    *,
    raise_exit: Callable,
    require_config: Callable,
    webhook_url: Callable,
) -> None:
    @green_api_app.command("set-webhook")
    def green_api_set_webhook(
        config_path: Optional[Path] = typer.Option(None, "--config", help="Path to bot.yml"),
    ) -> None:
        """Register <domain><green_api.path> as the Green-API instance webhook."""
        config = require_config(config_path)
        green = config.green_api
        if green is None:
            raise_exit("No green_api section in config.")
        if not green.id_instance or not green.api_token_instance:
            raise_exit("Green-API instance id and token must both be set.")
        url = webhook_url(config, green.path)
        credentials = GreenCredentials(
            id_instance=green.id_instance, api_token_instance=green.api_token_instance
        )

        async def _run() -> None:
            async with GreenApiClient(credentials) as client:
                await client.set_webhook(url)

        try:
            asyncio.run(_run())
        except ChannelAPIError as exc:
            raise_exit(f"Green-API rejected the webhook: {exc}", cause=exc)
        typer.echo(f"Green-API webhook set to {url}")
