"""
Request deadline middleware.

Every HTTP request runs under a fixed wall-clock budget. When the budget is
exhausted before the response starts, the client gets a 503. Writes committed
before the deadline are not rolled back.
"""
import asyncio
import json

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.errors import RequestTimedOut
from app.utils import get_logger


log = get_logger(__name__)


class RequestTimeoutMiddleware:
    """Pure ASGI middleware enforcing ``timeout`` seconds per HTTP request."""

    def __init__(self, app: ASGIApp, timeout: float):
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, send_wrapper), timeout=self.timeout)
        except asyncio.TimeoutError:
            log.warning("Request %s %s exceeded %.2fs deadline", scope.get("method"), scope.get("path"), self.timeout)
            if response_started:
                return
            body = json.dumps({"detail": RequestTimedOut.message}).encode()
            await send({
                "type": "http.response.start",
                "status": RequestTimedOut.status_code,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"content-length", str(len(body)).encode()),
                ],
            })
            await send({"type": "http.response.body", "body": body})
