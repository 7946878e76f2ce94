"""
Default route table for the SampleApp API.

A route table is any callable `(context, router_cls) -> None`. It receives
the service context and the transport's router class so it can build and
mount its own sub-routers; the bring-up knows nothing about route contents.
Replace `register_routes` with a domain-specific table when embedding.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Type

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from sampleapp.observability.logging import get_logger
from sampleapp.observability.metrics import get_metrics_content_type, get_metrics_output

if TYPE_CHECKING:
    from sampleapp.bootstrap.context import ServiceContext

RouteTable = Callable[["ServiceContext", Type[APIRouter]], None]

logger = get_logger(__name__)


def register_routes(context: "ServiceContext", router_cls: Type[APIRouter]) -> None:
    """Mount the operational endpoints (/health, /metrics)."""

    router = router_cls(tags=["ops"])

    @router.get("/health")
    async def health(request: Request) -> JSONResponse:
        models = context.models
        try:
            healthy = models is not None and await models.database.ping()
        except Exception as exc:
            logger.warning("health_check_failed", error=str(exc))
            healthy = False
        return JSONResponse(
            {
                "status": "healthy" if healthy else "unhealthy",
                "request_id": getattr(request.state, "request_id", None),
            },
            status_code=200 if healthy else 503,
        )

    @router.get("/metrics")
    async def metrics() -> Response:
        return Response(content=get_metrics_output(), media_type=get_metrics_content_type())

    context.app.include_router(router)


__all__ = ["RouteTable", "register_routes"]
