from __future__ import annotations

import json
import logging
from typing import Any, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging for entry points (CLI, server)."""
    resolved = (level or "INFO").upper()
    numeric = logging.getLevelName(resolved)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=DEFAULT_LOG_FORMAT)
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))


def _coerce(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_coerce(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _coerce(item) for key, item in value.items()}
    return str(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit a single structured log line: `event {json fields}`."""
    if not logger.isEnabledFor(level):
        return
    payload = {key: _coerce(value) for key, value in fields.items()}
    if exc is not None:
        payload["error"] = str(exc)
        payload["error_type"] = type(exc).__name__
    try:
        rendered = json.dumps(payload, ensure_ascii=False, sort_keys=True)
    except (TypeError, ValueError):
        rendered = str(payload)
    logger.log(
        level,
        "%s %s",
        event,
        rendered,
        exc_info=exc if exc is not None and level >= logging.ERROR else None,
    )
