"""
ASGI middleware installed by the bring-up stages.

- BodyLimitMiddleware: rejects request bodies over the configured size
- SecurityHeadersMiddleware: adds conservative security headers
- RequestContextMiddleware: binds a request-scoped logging context

All three are plain ASGI callables so that request bodies stream through
untouched and contextvars bound here are visible to the route handler.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import structlog
from fastapi import HTTPException
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from sampleapp.observability.logging import (
    REQUEST_ID_HEADER,
    get_logger,
    resolve_request_id,
)
from sampleapp.observability.metrics import increment_counter, record_histogram

SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


class PayloadTooLarge(HTTPException):
    """Raised while streaming a body that grows past the limit."""

    def __init__(self, max_body_bytes: int) -> None:
        super().__init__(413, f"Request body exceeds {max_body_bytes} bytes")


def _error_body(status_code: int, error_type: str, message: str) -> Dict[str, Any]:
    return {"error": {"type": error_type, "message": message, "status": status_code}}


class BodyLimitMiddleware:
    """Reject request payloads larger than `max_body_bytes` with 413."""

    def __init__(self, app: ASGIApp, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None:
            try:
                length = int(declared)
            except ValueError:
                length = -1
            if length < 0:
                await JSONResponse(
                    _error_body(400, "bad_request", "Invalid Content-Length header"),
                    status_code=400,
                )(scope, receive, send)
                return
            if length > self.max_body_bytes:
                await self._reject(scope, receive, send)
                return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise PayloadTooLarge(self.max_body_bytes)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except PayloadTooLarge:
            if response_started:
                raise
            await self._reject(scope, receive, send)

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        message = f"Request body exceeds {self.max_body_bytes} bytes"
        await JSONResponse(
            _error_body(413, "payload_too_large", message), status_code=413
        )(scope, receive, send)


class SecurityHeadersMiddleware:
    """Add baseline security headers to every HTTP response."""

    def __init__(self, app: ASGIApp, headers: Optional[Dict[str, str]] = None) -> None:
        self.app = app
        self.headers = dict(SECURITY_HEADERS if headers is None else headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    headers.setdefault(name, value)
                if "server" in headers:
                    del headers["server"]
            await send(message)

        await self.app(scope, receive, send_with_headers)


class RequestContextMiddleware:
    """
    Open a request-scoped logging context around each request.

    The request ID (client supplied or generated) is bound together with
    method and path via `structlog.contextvars.bound_contextvars`, which
    restores the previous bindings when the request finishes, including
    when the downstream app raises. It is also stored on the request state
    for the fault boundary and echoed as a response header.
    """

    def __init__(self, app: ASGIApp, logger: Any = None) -> None:
        self.app = app
        self.logger = logger or get_logger("sampleapp.request")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = resolve_request_id(Headers(scope=scope).get(REQUEST_ID_HEADER))
        scope.setdefault("state", {})["request_id"] = request_id
        method = scope.get("method", "")
        status_code = 500

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        start = time.perf_counter()
        with structlog.contextvars.bound_contextvars(
            request_id=request_id, method=method, path=scope.get("path", "")
        ):
            try:
                await self.app(scope, receive, send_with_request_id)
            finally:
                duration = time.perf_counter() - start
                self.logger.info(
                    "request_completed",
                    status=status_code,
                    duration_ms=round(duration * 1000, 2),
                )
                increment_counter(
                    "http_requests_total",
                    labels={"method": method, "status": str(status_code)},
                )
                record_histogram(
                    "http_request_duration_seconds", duration, labels={"method": method}
                )


__all__ = [
    "BodyLimitMiddleware",
    "RequestContextMiddleware",
    "SECURITY_HEADERS",
    "SecurityHeadersMiddleware",
]
