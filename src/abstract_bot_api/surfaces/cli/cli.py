import logging

import typer

from ... import __version__
from .commands.serve import register_serve_commands
from .commands.utils import import_handler as _import_handler
from .commands.utils import raise_exit as _raise_exit
from .commands.utils import require_config as _require_config
from .commands.utils import webhook_url as _webhook_url
from .commands.webhooks import (
    register_green_api_commands,
    register_telegram_commands,
)

logger = logging.getLogger("abstract_bot_api.cli")

app = typer.Typer(add_completion=False)
telegram_app = typer.Typer(add_completion=False)
green_api_app = typer.Typer(add_completion=False)


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"abstract-bot-api {__version__}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    return


def main() -> None:
    """Entrypoint for CLI execution."""
    app()


register_serve_commands(
    app,
    raise_exit=_raise_exit,
    require_config=_require_config,
    import_handler=_import_handler,
)
app.add_typer(telegram_app, name="telegram")
register_telegram_commands(
    telegram_app,
    raise_exit=_raise_exit,
    require_config=_require_config,
    webhook_url=_webhook_url,
)
app.add_typer(green_api_app, name="green-api")
register_green_api_commands(
    green_api_app,
    raise_exit=_raise_exit,
    require_config=_require_config,
    webhook_url=_webhook_url,
)
