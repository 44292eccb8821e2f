from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer

from ....core.config import BouncerConfig, ConfigError, load_config

DEFAULT_CONFIG_PATH = Path("bot.yml")


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def require_config(path: Optional[Path]) -> BouncerConfig:
    try:
        return load_config(path or DEFAULT_CONFIG_PATH)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


def import_handler(spec: str) -> Any:
    """Resolve `package.module:function` to the named attribute."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise_exit(f"Handler must look like 'package.module:function', got {spec!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise_exit(f"Cannot import handler module {module_name!r}: {exc}", cause=exc)
    handler = getattr(module, attr, None)
    if not callable(handler):
        raise_exit(f"{spec!r} is not a callable")
    return handler


def webhook_url(config: BouncerConfig, path: str) -> str:
    return f"{config.domain}{path}"
