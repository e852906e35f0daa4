"""HTTP middleware: security headers, body size limit and access logging."""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers

from .core import Settings
from .exceptions import PayloadTooLargeException

access_logger = logging.getLogger("contact_manager.access")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "cross-origin",
}

PRODUCTION_HEADERS = {
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Content-Security-Policy": (
        "default-src 'self'; base-uri 'self'; font-src 'self' https: data:; "
        "frame-ancestors 'self'; img-src 'self' data:; object-src 'none'; "
        "script-src 'self'; style-src 'self' https: 'unsafe-inline'"
    ),
}


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than ``max_bytes`` with 413.

    A declared ``Content-Length`` is checked up front; bodies without one
    (chunked uploads) are counted as they are read and the handler that
    reads past the limit raises ``PayloadTooLargeException``.
    """

    def __init__(self, app, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length is not None and length.isdigit() and int(length) > self.max_bytes:
            exc = PayloadTooLargeException()
            response = JSONResponse(
                status_code=exc.status_code,
                content={"success": False, "message": exc.detail},
            )
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive():
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise PayloadTooLargeException()
            return message

        await self.app(scope, limited_receive, send)


def register_middleware(app: FastAPI, settings: Settings) -> None:
    """Install the HTTP middleware chain for ``settings``."""
    headers = dict(SECURITY_HEADERS)
    if settings.is_production:
        headers.update(PRODUCTION_HEADERS)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_BODY_BYTES)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        if settings.is_development:
            access_logger.debug(
                "%s %s %d %.1f ms", request.method, request.url.path, response.status_code, elapsed
            )
        else:
            client = request.client.host if request.client else "-"
            access_logger.info(
                '%s "%s %s HTTP/%s" %d %.1f ms "%s"',
                client,
                request.method,
                request.url.path,
                request.scope.get("http_version", "1.1"),
                response.status_code,
                elapsed,
                request.headers.get("user-agent", "-"),
            )
        return response
