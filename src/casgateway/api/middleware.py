"""Middleware for request size limits and HTTP error logging."""

import logging
import time

from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from casgateway.core.config import settings
from casgateway.core.exceptions import PayloadTooLarge
from casgateway.core.logging import content_id_context

logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware:
    """Reject request bodies larger than the upload ceiling.

    A declared ``Content-Length`` over the limit is answered with 413
    before any body byte is read. Bodies without a length are counted
    as they stream in; crossing the limit aborts the request with the
    same 413 body unless a response has already started.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        limit = settings.max_request_bytes
        content_length = _header(scope, b"content-length")
        if content_length is not None and content_length.isdigit() and int(content_length) > limit:
            logger.warning(
                "Rejected oversized request",
                extra={"path": scope.get("path"), "content_length": int(content_length), "limit": limit},
            )
            await self._reject(
                PayloadTooLarge(
                    f"Request body of {content_length} bytes exceeds maximum allowed size of {settings.MAX_UPLOAD_MB}MB"
                ),
                scope,
                receive,
                send,
            )
            return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise PayloadTooLarge(
                        f"Request body exceeds maximum allowed size of {settings.MAX_UPLOAD_MB}MB"
                    )
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except PayloadTooLarge as e:
            if response_started:
                raise
            logger.warning(
                "Rejected oversized streamed request",
                extra={"path": scope.get("path"), "received": received, "limit": limit},
            )
            await self._reject(e, scope, receive, send)

    @staticmethod
    async def _reject(error: PayloadTooLarge, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(status_code=error.status_code, content=error.to_dict())
        await response(scope, receive, send)


def _header(scope: Scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1")
    return None


class HTTPErrorLoggingMiddleware:
    """Middleware to ensure all HTTP errors are logged.

    - 4xx responses: logged at WARN level
    - 5xx responses: logged at ERROR level

    Runs as plain ASGI so exceptions raised while the body is read
    reach the application's exception handlers unchanged.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        content_id_context.set(None)
        status_code = 500

        async def send_with_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_with_status)
        finally:
            self._log(scope, status_code, (time.time() - start_time) * 1000)

    @staticmethod
    def _log(scope: Scope, status_code: int, duration_ms: float) -> None:
        extra = {
            "http_status": status_code,
            "method": scope.get("method"),
            "path": scope.get("path"),
            "duration_ms": duration_ms,
        }
        if 400 <= status_code < 500:
            logger.warning("Client error response", extra=extra)
        elif status_code >= 500:
            logger.error("Server error response", extra=extra)
