from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ...core.exceptions import ChannelTransientError, channel_error_for_status
from ...core.logging_utils import log_event
from ...core.retry import retry_transient

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class PlatformClient:
    """Shared httpx plumbing for chat platform REST clients.

    Network failures, 429 and 5xx raise `ChannelTransientError` and are retried
    by `retry_transient`; any other non-2xx raises `ChannelPermanentError`.
    """

    platform = "platform"

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[dict[str, str]] = None,
        auth: Optional[httpx.Auth] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = dict(headers or {})
        self._auth = auth

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    @retry_transient()
    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = self._url(path)
        headers = {**self._headers, **(kwargs.pop("headers", None) or {})}
        if self._auth is not None:
            kwargs.setdefault("auth", self._auth)
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.WARNING,
                f"{self.platform}.request.network_error",
                method=method,
                path=path,
                exc=exc,
            )
            raise ChannelTransientError(
                f"{self.platform} request {method} {path} failed: {exc}"
            ) from exc
        if response.is_success:
            return response
        body_preview = (response.text or "").strip().replace("\n", " ")[:200]
        log_event(
            logger,
            logging.WARNING,
            f"{self.platform}.request.failed",
            method=method,
            path=path,
            status=response.status_code,
        )
        raise channel_error_for_status(self.platform, response.status_code, body_preview)

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._send(method, path, **kwargs)
        if not response.content:
            return {}
        return response.json()
