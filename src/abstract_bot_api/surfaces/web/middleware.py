from __future__ import annotations

from fastapi.responses import Response

CORS_HEADERS: tuple[tuple[str, str], ...] = (
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS"),
    ("Access-Control-Allow-Headers", "Content-Type, Authorization"),
)

_CORS_HEADER_NAMES = {name.lower().encode("latin-1") for name, _ in CORS_HEADERS}
_CORS_RAW_HEADERS = [
    (name.lower().encode("latin-1"), value.encode("latin-1"))
    for name, value in CORS_HEADERS
]


class CorsMiddleware:
    """
    Permissive CORS for every HTTP response.
    - OPTIONS on any path is answered with 204 and the CORS headers, before routing.
    - Every other response gets the same headers, replacing any the app set itself.
    """

    def __init__(self, app):
        self.app = app

    def __getattr__(self, name):
        return getattr(self.app, name)

    async def _preflight(self, scope, receive, send) -> None:
        response = Response(status_code=204, headers=dict(CORS_HEADERS))
        await response(scope, receive, send)

    async def __call__(self, scope, receive, send):
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        if scope.get("method") == "OPTIONS":
            return await self._preflight(scope, receive, send)

        async def send_with_cors(message):
            if message.get("type") == "http.response.start":
                headers = [
                    (key, value)
                    for key, value in message.get("headers") or []
                    if key.lower() not in _CORS_HEADER_NAMES
                ]
                headers.extend(_CORS_RAW_HEADERS)
                message = dict(message)
                message["headers"] = headers
            await send(message)

        return await self.app(scope, receive, send_with_cors)
