import logging
from pathlib import Path
from typing import Callable, Optional

import typer

from ....channels import endpoints_from_config
from ....core.config import ConfigError
from ....core.logging_utils import log_event, setup_logging
from ...web.runner import serve


def register_serve_commands(
    app: typer.Typer,
    *,
    raise_exit: Callable,
    require_config: Callable,
    import_handler: Callable,
) -> None:
    @app.command("serve")
    def serve_command(
        config_path: Optional[Path] = typer.Option(
            None, "--config", help="Path to bot.yml (default: ./bot.yml)"
        ),
        handler: str = typer.Option(
            ..., "--handler", help="Task handler as package.module:function"
        ),
    ) -> None:
        """Run the bouncer for every channel configured in bot.yml."""
        config = require_config(config_path)
        setup_logging(config.log_level)
        logger = logging.getLogger("abstract_bot_api.cli")
        task_handler = import_handler(handler)
        try:
            endpoints = endpoints_from_config(config, task_handler)
        except ConfigError as exc:
            raise_exit(str(exc), cause=exc)
        if not endpoints:
            raise_exit("No channels configured; add a channel section to the config.")
        log_event(
            logger,
            logging.INFO,
            "cli.serve.starting",
            host=config.host,
            port=config.port,
            domain=config.domain,
            endpoints=len(endpoints),
        )
        try:
            serve(config, endpoints)
        except KeyboardInterrupt:
            typer.echo("Bouncer stopped.")
