"""
Bootstrapper: drives the bring-up stages and starts serving.

The stage order is an explicit list (`Bootstrapper.stages()`), executed by
a driver loop that awaits each stage before starting the next and stops at
the first `Err`. There is no rollback: a failed bring-up ends the process.

Usage:
    config = load_config()
    await Bootstrapper(config).start()      # serves until stopped

    # or, for tests and embedding:
    result = await Bootstrapper(config).bring_up()
"""

from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

import uvicorn
from fastapi import FastAPI

from sampleapp.bootstrap.context import ServiceContext
from sampleapp.bootstrap.exceptions import BootstrapError, BootTransitionError, InitError
from sampleapp.bootstrap.lifecycle import BootState, can_transition
from sampleapp.bootstrap.result import Err, Ok, Result
from sampleapp.bootstrap.stages import (
    bind_cors,
    bind_fault_boundary,
    bind_observability,
    bind_persistence,
    bind_routes,
    initialize_transport,
)
from sampleapp.config import ServerConfig
from sampleapp.observability.logging import get_logger
from sampleapp.observability.metrics import increment_counter, track_duration
from sampleapp.persistence import PersistenceProvider, SQLitePersistence
from sampleapp.routes import RouteTable, register_routes
from sampleapp.server.faults import FaultHandler

StageRunner = Callable[[Optional[ServiceContext]], Awaitable[Result[ServiceContext]]]

LISTEN_BACKLOG = 2048


@dataclass(frozen=True)
class Stage:
    """One entry of the bring-up order."""

    name: str
    target: BootState
    run: StageRunner


class Bootstrapper:
    """
    Run the bring-up protocol once and serve the resulting app.

    Collaborators are injected so each can be swapped in tests:

    Args:
        config: Resolved service configuration
        persistence: Persistence provider (defaults to SQLitePersistence)
        route_table: Route registration callable (defaults to sampleapp.routes)
        fault_handler: Terminal error handler (defaults to FaultBoundary)
        logger: Diagnostics sink shared by every stage
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        persistence: Optional[PersistenceProvider] = None,
        route_table: Optional[RouteTable] = None,
        fault_handler: Optional[FaultHandler] = None,
        logger: Any = None,
    ) -> None:
        self.config = config
        self.persistence = persistence or SQLitePersistence()
        self.route_table = route_table or register_routes
        self.fault_handler = fault_handler
        self.logger = logger or get_logger("sampleapp.bootstrap")
        self.state = BootState.IDLE
        self.history: List[BootState] = [BootState.IDLE]
        self.context: Optional[ServiceContext] = None
        self._socket: Optional[socket.socket] = None

    def stages(self) -> List[Stage]:
        """Return the bring-up stages in execution order."""
        log = self.logger
        return [
            Stage(
                "transport",
                BootState.TRANSPORT_READY,
                lambda _ctx: initialize_transport(self.config, log),
            ),
            Stage(
                "persistence",
                BootState.PERSISTENCE_READY,
                lambda ctx: bind_persistence(ctx, self.persistence, log),
            ),
            Stage(
                "observability",
                BootState.OBSERVABILITY_READY,
                lambda ctx: bind_observability(ctx, log),
            ),
            Stage("cors", BootState.CORS_READY, lambda ctx: bind_cors(ctx, log)),
            Stage(
                "routes",
                BootState.ROUTES_READY,
                lambda ctx: bind_routes(ctx, self.route_table, log),
            ),
            Stage(
                "error-handler",
                BootState.FAULT_BOUNDARY_READY,
                lambda ctx: bind_fault_boundary(ctx, log, self.fault_handler),
            ),
        ]

    async def bring_up(self) -> Result[ServiceContext]:
        """Run stages 1-6 in order, stopping at the first failure."""
        if self.state is not BootState.IDLE:
            raise BootTransitionError(self.state.value, BootState.TRANSPORT_READY.value)

        context: Optional[ServiceContext] = None
        for stage in self.stages():
            with track_duration(
                "bootstrap_stage_duration_seconds", labels={"stage": stage.name}
            ):
                result = await stage.run(context)

            match result:
                case Ok(value=next_context):
                    context = next_context
                    self._advance(stage.target)
                case Err(error=error):
                    self._fail(error)
                    return result

        if context is None:
            raise BootstrapError("Bring-up finished without producing a service context")
        self.context = context
        self.logger.info("bootstrap_complete", pipeline=context.pipeline)
        return Ok(context)

    async def listen(self, context: ServiceContext) -> Result[ServiceContext]:
        """Stage 7: freeze the context and bind the recorded port."""
        host = self.config.host
        port = context.port
        try:
            context.freeze()
            self._socket = _bind_socket(host, port)
        except (OSError, OverflowError, TypeError, BootstrapError, RuntimeError) as exc:
            self.logger.error("listen_failed", host=host, port=port, error=str(exc))
            error = InitError("listen", exc)
            self._fail(error)
            return Err(error)

        self._advance(BootState.LISTENING)
        self.logger.info("server_listening", host=host, port=port)
        return Ok(context)

    async def serve(self, context: ServiceContext) -> None:
        """Serve on the bound socket until the server is stopped."""
        if self._socket is None:
            raise BootstrapError("serve() requires a successful listen()")
        server = uvicorn.Server(
            uvicorn.Config(
                context.app,
                log_config=None,
                access_log=False,
                server_header=False,
            )
        )
        try:
            await server.serve(sockets=[self._socket])
        finally:
            if context.models is not None:
                await context.models.close()
            self.logger.info("server_stopped")

    async def start(self) -> None:
        """Bring up, listen and serve; exit with status 1 on any failure."""
        result = await self.bring_up()
        if isinstance(result, Ok):
            result = await self.listen(result.value)

        match result:
            case Err(error=error):
                self.logger.error("bootstrap_failed", stage=error.stage, error=str(error))
                raise SystemExit(1)
            case Ok(value=context):
                await self.serve(context)

    def _advance(self, to_state: BootState) -> None:
        if not can_transition(self.state, to_state):
            raise BootTransitionError(self.state.value, to_state.value)
        self.state = to_state
        self.history.append(to_state)

    def _fail(self, error: InitError) -> None:
        self.logger.error(
            "bootstrap_stage_failed",
            stage=error.stage,
            state=self.state.value,
            error=str(error),
        )
        increment_counter("bootstrap_failures_total", labels={"stage": error.stage})
        self._advance(BootState.FAILED)


def _bind_socket(host: str, port: Optional[int]) -> socket.socket:
    if port is None:
        raise BootstrapError("No port recorded on the service context")
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_BACKLOG)
        sock.set_inheritable(True)
    except OSError:
        sock.close()
        raise
    return sock


async def build_app(config: ServerConfig, **collaborators: Any) -> FastAPI:
    """
    Run stages 1-6 and return the frozen app without binding a socket.

    Raises:
        InitError: if any stage fails
    """
    bootstrapper = Bootstrapper(config, **collaborators)
    result = await bootstrapper.bring_up()
    match result:
        case Err(error=error):
            raise error
        case Ok(value=context):
            return context.freeze()


__all__ = ["Bootstrapper", "Stage", "build_app"]
