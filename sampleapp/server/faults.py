"""
Terminal error handling for request-time failures.

`FaultBoundary` converts any error raised by route handlers or upstream
middleware into a JSON response. It is wired twice:

- as `FaultBoundaryMiddleware`, the innermost pipeline step wrapping route
  dispatch, so error responses still pass back through request context,
  CORS and security headers;
- as the app's exception handler for HTTP, validation and unexpected
  errors, which also covers failures raised by the middleware itself.

Request-time errors never stop the process.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from sampleapp.observability.logging import REQUEST_ID_HEADER, get_logger

GENERIC_ERROR_MESSAGE = "An internal error has occurred."


class FaultHandler(Protocol):
    """Collaborator turning an unhandled error into a terminal response."""

    async def handle(self, error: Exception, request: Request) -> Response:
        ...


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


class FaultBoundary:
    """Default fault handler producing `{"error": {...}}` JSON bodies."""

    def __init__(self, logger: Any = None) -> None:
        self.logger = logger or get_logger("sampleapp.faults")

    async def handle(self, error: Exception, request: Request) -> Response:
        request_id = _request_id(request)
        payload: Dict[str, Any] = {"request_id": request_id}
        headers: Dict[str, str] = {}

        if isinstance(error, HTTPException):
            status_code = error.status_code
            payload.update(type="http_error", message=str(error.detail))
            headers.update(getattr(error, "headers", None) or {})
            self.logger.info(
                "request_rejected", status=status_code, detail=str(error.detail)
            )
        elif isinstance(error, RequestValidationError):
            status_code = 422
            payload.update(
                type="validation_error",
                message="Request validation failed",
                details=jsonable_encoder(error.errors()),
            )
            self.logger.info("request_invalid", errors=len(error.errors()))
        else:
            status_code = 500
            payload.update(type="internal_error", message=GENERIC_ERROR_MESSAGE)
            self.logger.error(
                "request_failed",
                error=str(error),
                error_type=type(error).__name__,
                request_id=request_id,
                exc_info=error,
            )

        if request_id:
            headers[REQUEST_ID_HEADER] = request_id
        payload["status"] = status_code
        return JSONResponse({"error": payload}, status_code=status_code, headers=headers)


class FaultBoundaryMiddleware:
    """Innermost pipeline step: catch errors escaping route dispatch."""

    def __init__(self, app: ASGIApp, handler: FaultHandler) -> None:
        self.app = app
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            if response_started:
                raise
            response = await self.handler.handle(exc, Request(scope, receive))
            await response(scope, receive, send)


__all__ = [
    "FaultBoundary",
    "FaultBoundaryMiddleware",
    "FaultHandler",
    "GENERIC_ERROR_MESSAGE",
]
