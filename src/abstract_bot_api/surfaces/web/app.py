"""HTTP front for task handlers: direct answers or bounce-and-defer.

A request is parsed, its `Address` (method + pathname) is matched against the
endpoint table, and then either:

- the matched endpoint has `bounce=False`: its handler runs and its result is
  the response, or
- `bounce=True`: the caller gets an immediate 200 and the task is POSTed to
  `<domain><deferred_path>`, where it is matched again and its handler runs
  outside of the original request.

Bounce delivery is at most once: a failed self-POST is logged, never retried.
Webhook callers that received a 200 only know the task was accepted.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Sequence

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import Response

from ...core import capabilities
from ...core.config import (
    DEFAULT_DEFERRED_PATH,
    DEFAULT_FORWARD_TIMEOUT_SECONDS,
    DEFAULT_MAX_BODY_BYTES,
    BouncerConfig,
)
from ...core.exceptions import PayloadParseError
from ...core.logging_utils import log_event
from .endpoints import Address, Endpoint, Task, resolve_endpoint
from .middleware import CorsMiddleware
from .parsing import parse_body, parse_payload

logger = logging.getLogger(__name__)

ACCEPTED_BODY = b'{"message": "Data received successfully"}'
HANDLED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD"]


def _accepted() -> Response:
    return Response(content=ACCEPTED_BODY, media_type="application/json")


def _result_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    if isinstance(result, str):
        return Response(content=result, media_type="application/json")
    return _accepted()


async def run_endpoint(endpoint: Endpoint, task: Task) -> Any:
    """Invoke the endpoint handler with the request path visible as `url`."""
    scoped = capabilities.url.provide(task.address.url)(endpoint.handler)
    result = scoped(task.payload)
    if inspect.isawaitable(result):
        result = await result
    return result


class TaskForwarder:
    """Delivers bounced tasks to the deferred endpoint, fire-and-forget."""

    def __init__(
        self,
        deferred_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = DEFAULT_FORWARD_TIMEOUT_SECONDS,
    ) -> None:
        self.deferred_url = deferred_url
        # The deferred response arrives only once the handler finishes, so the
        # read phase is unbounded.
        self._timeout = httpx.Timeout(timeout_seconds, read=None)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=self._timeout)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, task: Task) -> asyncio.Task[None]:
        pending = asyncio.create_task(self._deliver(task))
        self._pending.add(pending)
        pending.add_done_callback(self._pending.discard)
        return pending

    async def _deliver(self, task: Task) -> None:
        try:
            response = await self._client.post(
                self.deferred_url, json=task.to_dict(), timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.ERROR,
                "bouncer.task.forward_failed",
                method=task.address.method,
                url=task.address.url,
                target=self.deferred_url,
                exc=exc,
            )
            return
        if response.is_success:
            log_event(
                logger,
                logging.DEBUG,
                "bouncer.task.forwarded",
                method=task.address.method,
                url=task.address.url,
            )
            return
        log_event(
            logger,
            logging.ERROR,
            "bouncer.task.deferred_failed",
            method=task.address.method,
            url=task.address.url,
            status=response.status_code,
        )

    async def drain(self, timeout: Optional[float] = None) -> None:
        if not self._pending:
            return
        _done, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for pending in still_pending:
            pending.cancel()
        if still_pending:
            await asyncio.gather(*still_pending, return_exceptions=True)

    async def close(self) -> None:
        await self.drain(timeout=0)
        if self._owns_client:
            await self._client.aclose()


def create_bouncer_app(
    domain: str,
    endpoints: Sequence[Endpoint],
    *,
    config: Optional[BouncerConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the ASGI app serving `endpoints` and the deferred re-entry path."""
    deferred_path = config.deferred_path if config else DEFAULT_DEFERRED_PATH
    max_body_bytes = config.max_body_bytes if config else DEFAULT_MAX_BODY_BYTES
    timeout_seconds = (
        config.forward_timeout_seconds if config else DEFAULT_FORWARD_TIMEOUT_SECONDS
    )
    table: tuple[Endpoint, ...] = tuple(endpoints)
    forwarder = TaskForwarder(
        f"{domain.rstrip('/')}{deferred_path}",
        http_client=http_client,
        timeout_seconds=timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_event(
            logger,
            logging.INFO,
            "bouncer.starting",
            domain=domain,
            endpoints=len(table),
            deferred_path=deferred_path,
        )
        try:
            yield
        finally:
            await forwarder.close()
            log_event(logger, logging.INFO, "bouncer.stopped")

    app = FastAPI(
        title="abstract-bot-api",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.endpoints = table
    app.state.forwarder = forwarder
    app.state.deferred_path = deferred_path

    async def handle_deferred(request: Request) -> Response:
        try:
            task = Task.from_dict(await parse_body(request, max_bytes=max_body_bytes))
        except PayloadParseError as exc:
            log_event(logger, logging.ERROR, "bouncer.deferred.parse_failed", exc=exc)
            return Response(status_code=500)
        endpoint = resolve_endpoint(table, task.address)
        if endpoint is None:
            log_event(
                logger,
                logging.WARNING,
                "bouncer.deferred.unmatched",
                method=task.address.method,
                url=task.address.url,
            )
            return Response(status_code=404)
        try:
            await run_endpoint(endpoint, task)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "bouncer.deferred.handler_failed",
                method=task.address.method,
                url=task.address.url,
                exc=exc,
            )
            return Response(status_code=500)
        return _accepted()

    async def route(request: Request) -> Response:
        if request.method == "POST" and request.url.path == deferred_path:
            return await handle_deferred(request)

        address = Address(method=request.method, url=request.url.path)
        try:
            payload = await parse_payload(request, max_bytes=max_body_bytes)
        except PayloadParseError as exc:
            log_event(
                logger,
                logging.ERROR,
                "bouncer.request.parse_failed",
                method=address.method,
                url=address.url,
                exc=exc,
            )
            return Response(status_code=500)

        endpoint = resolve_endpoint(table, address)
        if endpoint is None:
            log_event(
                logger,
                logging.INFO,
                "bouncer.request.unmatched",
                method=address.method,
                url=address.url,
            )
            return Response(status_code=404)

        task = Task(address=address, payload=payload)
        if endpoint.bounce:
            forwarder.submit(task)
            return _accepted()

        try:
            result = await run_endpoint(endpoint, task)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "bouncer.request.handler_failed",
                method=address.method,
                url=address.url,
                exc=exc,
            )
            return Response(status_code=500)
        return _result_response(result)

    async def dispatch(request: Request) -> Response:
        try:
            return await route(request)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "bouncer.request.failed",
                method=request.method,
                url=request.url.path,
                exc=exc,
            )
            return Response(status_code=500)

    app.add_api_route(
        "/{path:path}", dispatch, methods=HANDLED_METHODS, include_in_schema=False
    )
    app.add_middleware(CorsMiddleware)
    return app
