"""Endpoint descriptors and the task envelope used for deferred delivery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from fastapi.responses import Response

from ...core.exceptions import PayloadParseError

EndpointHandler = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class Address:
    """Method plus URL pathname; query string and body never take part."""

    method: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"method": self.method, "url": self.url}


@dataclass(frozen=True)
class Task:
    address: Address
    payload: Any

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address.to_dict(), "payload": self.payload}

    @classmethod
    def from_dict(cls, raw: Any) -> "Task":
        if not isinstance(raw, Mapping):
            raise PayloadParseError("Deferred task must be a JSON object")
        address = raw.get("address")
        if not isinstance(address, Mapping):
            raise PayloadParseError("Deferred task is missing an address")
        method = address.get("method")
        url = address.get("url")
        if not isinstance(method, str) or not isinstance(url, str):
            raise PayloadParseError("Deferred task address needs method and url")
        return cls(address=Address(method=method, url=url), payload=raw.get("payload"))


@dataclass(frozen=True)
class Endpoint:
    """Route descriptor.

    `bounce=True` acknowledges the caller immediately and runs `handler` later
    through the deferred endpoint. Otherwise the handler's result is the
    response: a `str` body, a starlette `Response`, or a generic 200.
    """

    predicate: Callable[[Address], bool]
    handler: EndpointHandler
    bounce: bool = False


def resolve_endpoint(
    endpoints: Sequence[Endpoint], address: Address
) -> Optional[Endpoint]:
    """First endpoint whose predicate accepts the address, in registration order."""
    for endpoint in endpoints:
        if endpoint.predicate(address):
            return endpoint
    return None


def matches_path(method: str, path: str) -> Callable[[Address], bool]:
    expected_method = method.upper()

    def predicate(address: Address) -> bool:
        return address.url == path and address.method == expected_method

    return predicate


def path_endpoint(
    method: str, path: str, handler: EndpointHandler, *, bounce: bool = False
) -> Endpoint:
    return Endpoint(predicate=matches_path(method, path), handler=handler, bounce=bounce)


def static_file_endpoint(content: str, content_type: str, path: str) -> Endpoint:
    """Serve fixed content on `GET path`."""

    async def serve(_payload: Any) -> Response:
        return Response(content=content, media_type=content_type)

    return path_endpoint("GET", path, serve)
