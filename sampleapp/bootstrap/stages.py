"""
The six bring-up stages.

Each stage takes the service context (stage 1 creates it) plus the
collaborators it needs, mutates the context in place and returns
`Ok(context)`. Any error is logged with a stage-specific event and
returned as `Err(InitError(<stage>, cause))`; stages never raise.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, List, Optional

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException

from sampleapp import SERVICE_NAME, __version__
from sampleapp.bootstrap.context import ServiceContext
from sampleapp.bootstrap.exceptions import InitError
from sampleapp.bootstrap.result import Err, Ok, Result
from sampleapp.config import ServerConfig
from sampleapp.persistence import PersistenceProvider
from sampleapp.routes import RouteTable
from sampleapp.server.cors import CorsPolicy, PolicyMiddleware, compute_allowed_origins
from sampleapp.server.faults import FaultBoundary, FaultBoundaryMiddleware, FaultHandler
from sampleapp.server.middleware import (
    BodyLimitMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)

ROUTES_STEP = "routes"


def _failed(logger: Any, stage: str, event: str, exc: Exception) -> Err:
    logger.error(event, stage=stage, error=str(exc), error_type=type(exc).__name__)
    return Err(InitError(stage, exc))


async def initialize_transport(config: ServerConfig, logger: Any) -> Result[ServiceContext]:
    """Stage 1: create the context, install body parsing and security headers."""
    try:
        app = FastAPI(title=SERVICE_NAME, version=__version__, docs_url=None, redoc_url=None)
        context = ServiceContext(app=app, config=config)
        context.port = config.port

        max_body_bytes = config.max_body_bytes
        context.use(
            "body-parser",
            lambda target: target.add_middleware(
                BodyLimitMiddleware, max_body_bytes=max_body_bytes
            ),
        )
        context.use(
            "security-headers",
            lambda target: target.add_middleware(SecurityHeadersMiddleware),
        )

        @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
        async def identify() -> str:
            return SERVICE_NAME

    except Exception as exc:
        return _failed(logger, "transport", "transport_setup_failed", exc)

    logger.info("transport_configured", port=context.port, max_body_bytes=max_body_bytes)
    return Ok(context)


async def bind_persistence(
    context: ServiceContext, persistence: PersistenceProvider, logger: Any
) -> Result[ServiceContext]:
    """Stage 2: connect to the backing store and attach the data-access layer."""
    try:
        await persistence.create_connection(context)
        try:
            models = persistence.build_models(context)
        except Exception:
            await persistence.close()
            raise
        context.attach_models(models)
    except Exception as exc:
        return _failed(logger, "persistence", "persistence_setup_failed", exc)

    logger.info("models_attached", tables=context.models.tables if context.models else [])
    return Ok(context)


async def bind_observability(context: ServiceContext, logger: Any) -> Result[ServiceContext]:
    """Stage 3: install the request-scoped logging context."""
    try:
        context.use(
            "request-context",
            lambda target: target.add_middleware(RequestContextMiddleware),
        )
    except Exception as exc:
        return _failed(logger, "observability", "observability_setup_failed", exc)

    logger.info("logger_initialized")
    return Ok(context)


def resolve_cors_policy(config: ServerConfig) -> CorsPolicy:
    """Build the CORS policy for the configured environment."""
    # TODO: add per-environment origin entries once staging/production hosts are known.
    origin_policy = config.cors.policy_for(config.environment)
    return CorsPolicy(
        allow_origins=compute_allowed_origins(origin_policy.protocols, origin_policy.domains)
    )


async def bind_cors(context: ServiceContext, logger: Any) -> Result[ServiceContext]:
    """Stage 4: install the CORS policy; it also answers OPTIONS on every path."""
    try:
        policy = resolve_cors_policy(context.config)
        options = policy.middleware_options()
        context.use("cors", lambda target: target.add_middleware(PolicyMiddleware, **options))
        context.cors_policy = policy
    except Exception as exc:
        return _failed(logger, "cors", "cors_setup_failed", exc)

    logger.info("cors_configured", allowed_origins=policy.allow_origins)
    return Ok(context)


def _walk_routes(routes: Iterable[Any], prefix: str = "") -> Iterator[str]:
    for route in routes:
        # Newer FastAPI keeps included routers as a single lazy entry.
        included = getattr(route, "original_router", None)
        if included is not None:
            include_context = getattr(route, "include_context", None)
            yield from _walk_routes(
                included.routes, prefix + getattr(include_context, "prefix", "")
            )
            continue

        path = getattr(route, "path", None)
        if path is None:
            continue
        children = getattr(route, "routes", None)
        if children is not None:
            yield from _walk_routes(children, prefix + path)
            continue
        for method in sorted(getattr(route, "methods", None) or ()):
            yield f"{method} {prefix}{path}"


def _registered_routes(app: FastAPI) -> List[str]:
    return list(_walk_routes(app.router.routes))


async def bind_routes(
    context: ServiceContext, route_table: RouteTable, logger: Any
) -> Result[ServiceContext]:
    """Stage 5: let the route table register its handlers."""
    try:
        before = set(_registered_routes(context.app))
        route_table(context, APIRouter)
        registered = [r for r in _registered_routes(context.app) if r not in before]
        context.record_routes(registered)
        context.use(ROUTES_STEP)
    except Exception as exc:
        return _failed(logger, "routes", "routes_setup_failed", exc)

    logger.info("routes_registered", routes=registered)
    return Ok(context)


async def bind_fault_boundary(
    context: ServiceContext, logger: Any, handler: Optional[FaultHandler] = None
) -> Result[ServiceContext]:
    """Stage 6: install the terminal error handler; it must come last."""
    try:
        if context.pipeline[-1:] != [ROUTES_STEP]:
            raise RuntimeError(
                f"Fault boundary must follow route registration, pipeline is {context.pipeline}"
            )
        fault_handler: FaultHandler = handler or FaultBoundary()

        async def on_exception(request: Request, exc: Exception) -> Response:
            return await fault_handler.handle(exc, request)

        for exc_type in (HTTPException, RequestValidationError, Exception):
            context.app.add_exception_handler(exc_type, on_exception)
        context.use(
            "fault-boundary",
            lambda target: target.add_middleware(FaultBoundaryMiddleware, handler=fault_handler),
        )
    except Exception as exc:
        return _failed(logger, "error-handler", "error_handler_setup_failed", exc)

    logger.info("error_handler_set")
    return Ok(context)


__all__ = [
    "bind_cors",
    "bind_fault_boundary",
    "bind_observability",
    "bind_persistence",
    "bind_routes",
    "initialize_transport",
    "resolve_cors_policy",
]
