"""Request body size limit middleware.

Bodies above ``max_body_bytes`` get a 413 in the service's JSON error
shape. A declared Content-Length is checked before anything is read;
chunked bodies are counted as they arrive.
"""

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send


class BodyTooLargeError(Exception):
    """Raised from ``receive`` once the body passes the limit."""


class RequestSizeLimitMiddleware:
    """ASGI middleware to limit request body size.

    Usage:
        app.add_middleware(RequestSizeLimitMiddleware, max_body_size=32 * 1024)
    """

    def __init__(self, app: ASGIApp, max_body_size: int = 32 * 1024):
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_body_size:
            await self._reject(scope, receive, send)
            return

        bytes_read = 0
        response_started = False

        async def counting_receive() -> Message:
            nonlocal bytes_read
            message = await receive()
            if message["type"] == "http.request":
                bytes_read += len(message.get("body", b""))
                if bytes_read > self.max_body_size:
                    raise BodyTooLargeError(bytes_read)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, counting_receive, tracking_send)
        except BodyTooLargeError:
            if response_started:
                raise
            await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(
            status_code=413,
            content={"ok": False, "error": "Request body too large"},
        )
        await response(scope, receive, send)
