"""Turn an inbound HTTP request into a plain, JSON-safe payload."""

from __future__ import annotations

import base64
import json
from typing import Any, AsyncIterator, Iterable, Union
from urllib.parse import parse_qsl

from fastapi import Request
from starlette.datastructures import UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser

from ...core.config import DEFAULT_MAX_BODY_BYTES
from ...core.exceptions import PayloadParseError

FormValue = Union[str, list[str]]


def group_pairs(pairs: Iterable[tuple[str, str]]) -> dict[str, FormValue]:
    """Collect key/value pairs; a key seen more than once keeps every value."""
    grouped: dict[str, list[str]] = {}
    for key, value in pairs:
        grouped.setdefault(key, []).append(value)
    return {key: values[0] if len(values) == 1 else values for key, values in grouped.items()}


def parse_query_string(query: str) -> dict[str, FormValue]:
    return group_pairs(parse_qsl(query, keep_blank_values=True))


async def read_body(request: Request, *, max_bytes: int = DEFAULT_MAX_BODY_BYTES) -> bytes:
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > max_bytes:
            raise PayloadParseError(f"Request body exceeds {max_bytes} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def _replay(body: bytes) -> AsyncIterator[bytes]:
    yield body


async def _parse_multipart(request: Request, body: bytes) -> dict[str, Any]:
    parser = MultiPartParser(request.headers, _replay(body))
    try:
        form = await parser.parse()
    except MultiPartException as exc:
        raise PayloadParseError(f"Malformed multipart body: {exc.message}") from exc
    field_pairs: list[tuple[str, str]] = []
    files: dict[str, Any] = {}
    try:
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                data = await value.read()
                entry = {
                    "filename": value.filename,
                    "content_type": value.content_type,
                    "data_base64": base64.b64encode(data).decode("ascii"),
                }
                existing = files.get(key)
                if existing is None:
                    files[key] = entry
                elif isinstance(existing, list):
                    existing.append(entry)
                else:
                    files[key] = [existing, entry]
            else:
                field_pairs.append((key, value))
    finally:
        await form.close()
    return {"fields": group_pairs(field_pairs), "files": files}


async def parse_body(
    request: Request, *, max_bytes: int = DEFAULT_MAX_BODY_BYTES
) -> Any:
    content_type = request.headers.get("content-type") or ""
    lowered = content_type.lower()
    if "application/json" in lowered:
        body = await read_body(request, max_bytes=max_bytes)
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PayloadParseError(f"Malformed JSON body: {exc}") from exc
    if "application/x-www-form-urlencoded" in lowered:
        body = await read_body(request, max_bytes=max_bytes)
        try:
            return parse_query_string(body.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise PayloadParseError(f"Malformed form body: {exc}") from exc
    if "multipart/form-data" in lowered:
        body = await read_body(request, max_bytes=max_bytes)
        return await _parse_multipart(request, body)
    raise PayloadParseError(f"Unsupported incoming type: {content_type or None}")


async def parse_payload(
    request: Request, *, max_bytes: int = DEFAULT_MAX_BODY_BYTES
) -> Any:
    """POST bodies are parsed by content type; other methods use the query string."""
    if request.method == "POST":
        return await parse_body(request, max_bytes=max_bytes)
    return parse_query_string(request.url.query)
