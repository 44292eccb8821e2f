"""Generic WebSocket channel with per-user buffering of undelivered messages.

Clients send JSON frames `{"token": ..., "text": ...}`. The token is checked
by a caller-supplied login function on every frame; the first successful
login binds the socket to that user. Outbound frames are JSON objects with a
`timestamp` (ms) and a `key` identifying the logical message, plus `text`,
`percentage`, `spinner` or `url` depending on the capability that sent it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from ..core import capabilities
from ..core.capabilities import ProgressUpdate, StopSpinner, TaskHandler
from ..core.context import Injector, compose
from ..core.logging_utils import log_event
from .chat.models import MessageEvent

logger = logging.getLogger(__name__)

WEBSOCKET_MEDIUM = "websocket"
MAX_BUFFERED_PER_USER = 100

OutboundMessage = dict[str, Any]
SendToUser = Callable[[OutboundMessage], Awaitable[None]]


@dataclass(frozen=True)
class WebsocketLogin:
    unique_id: str
    human_readable_id: str


LoginResult = Optional[WebsocketLogin]
LoginFunction = Callable[[str], Union[LoginResult, Awaitable[LoginResult]]]


def make_key() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time.time() * 1000)


class SocketManager:
    """Maps user ids to open sockets and buffers messages nobody could receive.

    At most `max_buffered` messages are kept per offline user; older ones are
    dropped first.
    """

    def __init__(self, max_buffered: int = MAX_BUFFERED_PER_USER) -> None:
        self.max_buffered = max_buffered
        self.mapping: dict[str, list[WebSocket]] = {}
        self.buffered: dict[str, list[OutboundMessage]] = {}

    async def _send_one(self, socket: WebSocket, frame: OutboundMessage) -> bool:
        try:
            await socket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            log_event(logger, logging.DEBUG, "websocket.send.failed", exc=exc)
            return False
        return True

    async def send_to_user(self, user_id: str, message: OutboundMessage) -> None:
        """Deliver to every open socket of the user; buffer if none accepted it."""
        frame = {"timestamp": now_ms(), **message}
        sockets = list(self.mapping.get(user_id, ()))
        results = await asyncio.gather(*(self._send_one(s, frame) for s in sockets))
        if not any(results):
            self._buffer(user_id, message)

    def _buffer(self, user_id: str, message: OutboundMessage) -> None:
        queue = self.buffered.setdefault(user_id, [])
        queue.append(message)
        overflow = len(queue) - self.max_buffered
        if overflow > 0:
            del queue[:overflow]
            log_event(
                logger,
                logging.WARNING,
                "websocket.buffer.dropped",
                user_id=user_id,
                dropped=overflow,
            )

    def sender_for(self, user_id: str) -> SendToUser:
        async def send(message: OutboundMessage) -> None:
            await self.send_to_user(user_id, message)

        return send

    def remove_socket(self, socket: WebSocket) -> None:
        self.mapping = {
            user: remaining
            for user, sockets in self.mapping.items()
            if (remaining := [s for s in sockets if s is not socket])
        }

    async def add_socket(self, socket: WebSocket, user_id: str) -> None:
        self.remove_socket(socket)
        self.mapping.setdefault(user_id, []).append(socket)
        past = self.buffered.pop(user_id, [])
        for message in past:
            await self.send_to_user(user_id, message)


def websocket_inject(send: SendToUser, user_id: str) -> Injector:
    """Capabilities that turn every output into a JSON frame passed to `send`."""

    async def progress_bar(text: str) -> ProgressUpdate:
        key = make_key()

        async def update(percentage: float) -> None:
            await send({"key": key, "text": text, "percentage": percentage})

        return update

    async def spinner(text: str) -> StopSpinner:
        key = make_key()
        await send({"key": key, "text": text, "spinner": True})

        async def stop() -> None:
            await send({"key": key, "text": text, "spinner": False})

        return stop

    async def reply(text: str) -> str:
        key = make_key()
        await send({"key": key, "text": text})
        return key

    async def send_file(url: str) -> None:
        await send({"key": make_key(), "url": url})

    return compose(
        capabilities.medium.provide(WEBSOCKET_MEDIUM),
        capabilities.file_limit_mb.provide(math.inf),
        capabilities.user_id.provide(user_id),
        capabilities.progress_bar.inject(progress_bar),
        capabilities.spinner.inject(spinner),
        capabilities.reply.inject(reply),
        capabilities.send_file.inject(send_file),
    )


async def _login(login: LoginFunction, token: str) -> LoginResult:
    result = login(token)
    if inspect.isawaitable(result):
        result = await result
    return result


def attach_websocket(
    app: FastAPI,
    login: LoginFunction,
    task_handler: TaskHandler,
    *,
    path: str = "/ws",
    manager: Optional[SocketManager] = None,
) -> SocketManager:
    """Serve the websocket channel on `path` of an existing app."""
    sockets = manager or SocketManager()
    running: set[asyncio.Task[Any]] = set()

    async def run_task(send: SendToUser, user: str, text: str) -> None:
        try:
            await compose(
                websocket_inject(send, user),
                capabilities.last_event.provide(MessageEvent(text=text)),
            )(task_handler)()
        except Exception as exc:
            log_event(logger, logging.ERROR, "websocket.task.failed", user=user, exc=exc)

    async def serve_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        try:
            while True:
                try:
                    frame = await websocket.receive_json()
                except ValueError as exc:
                    log_event(logger, logging.WARNING, "websocket.frame.invalid", exc=exc)
                    continue
                if not isinstance(frame, dict):
                    continue
                identity = await _login(login, str(frame.get("token", "")))
                if identity is None:
                    log_event(logger, logging.INFO, "websocket.login.rejected")
                    await websocket.close()
                    break
                await sockets.add_socket(websocket, identity.unique_id)
                text = frame.get("text")
                if not text:
                    continue
                task = asyncio.create_task(
                    run_task(
                        sockets.sender_for(identity.unique_id),
                        identity.human_readable_id,
                        str(text),
                    )
                )
                running.add(task)
                task.add_done_callback(running.discard)
        except WebSocketDisconnect:
            pass
        finally:
            sockets.remove_socket(websocket)

    app.add_api_websocket_route(path, serve_socket)
    return sockets
