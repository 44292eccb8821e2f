from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError

logger = logging.getLogger("abstract_bot_api.core.config")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_DEFERRED_PATH = "/abstract-bot-api-deferred"
DEFAULT_MAX_BODY_BYTES = 10_000_000
DEFAULT_FORWARD_TIMEOUT_SECONDS = 30.0
DEFAULT_LOG_LEVEL = "INFO"

DOMAIN_ENV = "ABSTRACT_BOT_DOMAIN"
PORT_ENV = "PORT"
LOG_LEVEL_ENV = "ABSTRACT_BOT_LOG_LEVEL"


def _section(raw: Mapping[str, Any], key: str) -> Optional[dict[str, Any]]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _parse_positive_int(value: Any, *, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be > 0")
    return parsed


def _parse_positive_float(value: Any, *, key: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        raise ConfigError(f"{key} must be > 0")
    return parsed


def _parse_path(value: Any, *, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{key} must be a non-empty string")
    path = value.strip()
    if not path.startswith("/"):
        raise ConfigError(f"{key} must start with '/'")
    return path


def _secret(
    cfg: Mapping[str, Any], env_key: str, default_env: str, env: Mapping[str, str]
) -> Optional[str]:
    env_name = str(cfg.get(env_key, default_env)).strip()
    if not env_name:
        raise ConfigError(f"{env_key} must be non-empty")
    value = env.get(env_name)
    return value or None


@dataclass(frozen=True)
class TelegramChannelConfig:
    path: str
    token: Optional[str]
    token_env: str

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Mapping[str, str]
    ) -> "TelegramChannelConfig":
        token_env = str(raw.get("token_env", "TELEGRAM_TOKEN"))
        return cls(
            path=_parse_path(raw.get("path", "/telegram"), key="telegram.path"),
            token=_secret(raw, "token_env", "TELEGRAM_TOKEN", env),
            token_env=token_env,
        )


@dataclass(frozen=True)
class WhatsAppChannelConfig:
    path: str
    access_token: Optional[str]
    verify_token: Optional[str]

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Mapping[str, str]
    ) -> "WhatsAppChannelConfig":
        return cls(
            path=_parse_path(raw.get("path", "/whatsapp"), key="whatsapp.path"),
            access_token=_secret(
                raw, "access_token_env", "WHATSAPP_ACCESS_TOKEN", env
            ),
            verify_token=_secret(
                raw, "verify_token_env", "WHATSAPP_VERIFICATION_TOKEN", env
            ),
        )


@dataclass(frozen=True)
class MessengerChannelConfig:
    path: str
    access_token: Optional[str]
    verify_token: Optional[str]

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Mapping[str, str]
    ) -> "MessengerChannelConfig":
        return cls(
            path=_parse_path(raw.get("path", "/messenger"), key="messenger.path"),
            access_token=_secret(
                raw, "access_token_env", "MESSENGER_ACCESS_TOKEN", env
            ),
            verify_token=_secret(
                raw, "verify_token_env", "MESSENGER_VERIFICATION_TOKEN", env
            ),
        )


@dataclass(frozen=True)
class GreenApiChannelConfig:
    path: str
    id_instance: Optional[str]
    api_token_instance: Optional[str]

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Mapping[str, str]
    ) -> "GreenApiChannelConfig":
        return cls(
            path=_parse_path(raw.get("path", "/green-api"), key="green_api.path"),
            id_instance=_secret(raw, "id_instance_env", "GREEN_API_ID_INSTANCE", env),
            api_token_instance=_secret(
                raw, "api_token_env", "GREEN_API_TOKEN_INSTANCE", env
            ),
        )


@dataclass(frozen=True)
class ForwardEmailChannelConfig:
    path: str
    from_email: str
    api_key: Optional[str]

    @classmethod
    def from_raw(
        cls, raw: Mapping[str, Any], *, env: Mapping[str, str]
    ) -> "ForwardEmailChannelConfig":
        from_email = raw.get("from_email")
        if not isinstance(from_email, str) or "@" not in from_email:
            raise ConfigError("forward_email.from_email must be an email address")
        return cls(
            path=_parse_path(raw.get("path", "/email"), key="forward_email.path"),
            from_email=from_email.strip(),
            api_key=_secret(raw, "api_key_env", "FORWARD_EMAIL_API_KEY", env),
        )


@dataclass(frozen=True)
class BouncerConfig:
    domain: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    deferred_path: str = DEFAULT_DEFERRED_PATH
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    forward_timeout_seconds: float = DEFAULT_FORWARD_TIMEOUT_SECONDS
    log_level: str = DEFAULT_LOG_LEVEL
    telegram: Optional[TelegramChannelConfig] = None
    whatsapp: Optional[WhatsAppChannelConfig] = None
    messenger: Optional[MessengerChannelConfig] = None
    green_api: Optional[GreenApiChannelConfig] = None
    forward_email: Optional[ForwardEmailChannelConfig] = None

    @property
    def deferred_url(self) -> str:
        return f"{self.domain.rstrip('/')}{self.deferred_path}"

    @classmethod
    def from_raw(
        cls,
        raw: Optional[Mapping[str, Any]],
        *,
        env: Optional[Mapping[str, str]] = None,
    ) -> "BouncerConfig":
        cfg: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
        environ: Mapping[str, str] = os.environ if env is None else env

        domain = environ.get(DOMAIN_ENV) or cfg.get("domain")
        if not isinstance(domain, str) or not domain.strip():
            raise ConfigError(f"domain is required (config key or {DOMAIN_ENV})")
        domain = domain.strip().rstrip("/")
        if not domain.startswith(("http://", "https://")):
            raise ConfigError("domain must start with http:// or https://")

        host = str(cfg.get("host", DEFAULT_HOST)).strip() or DEFAULT_HOST
        port = _parse_positive_int(
            environ.get(PORT_ENV) or cfg.get("port", DEFAULT_PORT), key="port"
        )
        deferred_path = _parse_path(
            cfg.get("deferred_path", DEFAULT_DEFERRED_PATH), key="deferred_path"
        )
        max_body_bytes = _parse_positive_int(
            cfg.get("max_body_bytes", DEFAULT_MAX_BODY_BYTES), key="max_body_bytes"
        )
        forward_timeout_seconds = _parse_positive_float(
            cfg.get("forward_timeout_seconds", DEFAULT_FORWARD_TIMEOUT_SECONDS),
            key="forward_timeout_seconds",
        )
        log_level = (
            str(environ.get(LOG_LEVEL_ENV) or cfg.get("log_level", DEFAULT_LOG_LEVEL))
            .strip()
            .upper()
        )

        telegram_raw = _section(cfg, "telegram")
        whatsapp_raw = _section(cfg, "whatsapp")
        messenger_raw = _section(cfg, "messenger")
        green_api_raw = _section(cfg, "green_api")
        forward_email_raw = _section(cfg, "forward_email")

        return cls(
            domain=domain,
            host=host,
            port=port,
            deferred_path=deferred_path,
            max_body_bytes=max_body_bytes,
            forward_timeout_seconds=forward_timeout_seconds,
            log_level=log_level,
            telegram=(
                TelegramChannelConfig.from_raw(telegram_raw, env=environ)
                if telegram_raw is not None
                else None
            ),
            whatsapp=(
                WhatsAppChannelConfig.from_raw(whatsapp_raw, env=environ)
                if whatsapp_raw is not None
                else None
            ),
            messenger=(
                MessengerChannelConfig.from_raw(messenger_raw, env=environ)
                if messenger_raw is not None
                else None
            ),
            green_api=(
                GreenApiChannelConfig.from_raw(green_api_raw, env=environ)
                if green_api_raw is not None
                else None
            ),
            forward_email=(
                ForwardEmailChannelConfig.from_raw(forward_email_raw, env=environ)
                if forward_email_raw is not None
                else None
            ),
        )


def load_config_data(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def load_config(
    path: Path, *, env: Optional[Mapping[str, str]] = None
) -> BouncerConfig:
    """Load YAML config, after loading a `.env` next to it into the process env."""
    dotenv_path = path.parent / ".env"
    if env is None and dotenv_path.exists():
        load_dotenv(dotenv_path, override=False)
        logger.debug("Loaded environment from %s", dotenv_path)
    return BouncerConfig.from_raw(load_config_data(path), env=env)
