from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

import uvicorn
from fastapi import FastAPI

from ...core.config import DEFAULT_HOST, BouncerConfig
from ...core.logging_utils import log_event
from .app import create_bouncer_app
from .endpoints import Endpoint

logger = logging.getLogger(__name__)

STARTUP_POLL_SECONDS = 0.01


class ServerStartError(RuntimeError):
    """uvicorn exited before it started accepting connections."""


class BouncerServer:
    """Handle for a bouncer served by uvicorn inside the running event loop."""

    def __init__(self, app: FastAPI, server: uvicorn.Server, task: asyncio.Task) -> None:
        self.app = app
        self._server = server
        self._task = task

    @property
    def port(self) -> int:
        sock = next(
            (s for listener in self._server.servers for s in listener.sockets), None
        )
        if sock is None:
            return int(self._server.config.port)
        return int(sock.getsockname()[1])

    @property
    def closed(self) -> bool:
        return self._task.done()

    async def close(self) -> None:
        port = self.port
        self._server.should_exit = True
        await self._task
        log_event(logger, logging.INFO, "bouncer.server.closed", port=port)


def _uvicorn_config(app: FastAPI, host: str, port: int) -> uvicorn.Config:
    return uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        log_config=None,
    )


async def start_server(
    domain: str,
    port: int,
    endpoints: Sequence[Endpoint],
    *,
    host: str = DEFAULT_HOST,
    config: Optional[BouncerConfig] = None,
) -> BouncerServer:
    """Serve `endpoints` on `host:port`; returns once the socket is listening.

    `domain` is the externally reachable base URL used to address this
    process's own deferred endpoint.
    """
    app = create_bouncer_app(domain, endpoints, config=config)
    server = uvicorn.Server(_uvicorn_config(app, host, port))
    task = asyncio.create_task(server.serve())
    while not server.started:
        if task.done():
            exc = task.exception()
            raise ServerStartError(f"Bouncer failed to start on {host}:{port}") from exc
        await asyncio.sleep(STARTUP_POLL_SECONDS)
    handle = BouncerServer(app, server, task)
    log_event(
        logger,
        logging.INFO,
        "bouncer.server.listening",
        host=host,
        port=handle.port,
        domain=domain,
    )
    return handle


def serve(config: BouncerConfig, endpoints: Sequence[Endpoint]) -> None:
    """Blocking entry point used by the CLI."""
    app = create_bouncer_app(config.domain, endpoints, config=config)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
    )
