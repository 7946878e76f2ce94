"""
Service context threaded through every bring-up stage.

The context owns the FastAPI application plus the bookkeeping the stages
need: the recorded port, the ordered middleware pipeline, the data-access
layer and the registered route list. Middleware is recorded, not added to
the app immediately; `freeze()` materialises the pipeline once, right
before the server starts accepting connections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from fastapi import FastAPI

from sampleapp.bootstrap.exceptions import ContextFrozenError
from sampleapp.config import ServerConfig
from sampleapp.server.cors import CorsPolicy

if TYPE_CHECKING:
    from sampleapp.persistence import ModelSet

Installer = Callable[[FastAPI], None]


@dataclass(frozen=True)
class PipelineStep:
    """One named entry of the request pipeline.

    `install` adds the step's middleware to the app; marker steps (routes,
    fault boundary) are wired by other means and carry no installer.
    """

    name: str
    install: Optional[Installer] = None


@dataclass
class ServiceContext:
    """Mutable state accumulated across bring-up stages."""

    app: FastAPI
    config: ServerConfig
    _port: Optional[int] = field(default=None, repr=False)
    _pipeline: List[PipelineStep] = field(default_factory=list, repr=False)
    _models: Optional["ModelSet"] = field(default=None, repr=False)
    _routes: Optional[List[str]] = field(default=None, repr=False)
    cors_policy: Optional[CorsPolicy] = None
    frozen: bool = False

    @property
    def port(self) -> Optional[int]:
        return self._port

    @port.setter
    def port(self, value: int) -> None:
        self._check_mutable()
        if self._port is not None:
            raise AttributeError("Port is already recorded and cannot change")
        self._port = int(value)

    @property
    def pipeline(self) -> List[str]:
        """Names of the installed steps in execution order."""
        return [step.name for step in self._pipeline]

    @property
    def models(self) -> Optional["ModelSet"]:
        return self._models

    @property
    def routes(self) -> Optional[List[str]]:
        return list(self._routes) if self._routes is not None else None

    def use(self, name: str, install: Optional[Installer] = None) -> None:
        """Append a step to the request pipeline."""
        self._check_mutable()
        if name in self.pipeline:
            raise ValueError(f"Pipeline step {name!r} is already installed")
        self._pipeline.append(PipelineStep(name=name, install=install))

    def attach_models(self, models: "ModelSet") -> None:
        self._check_mutable()
        if self._models is not None:
            raise AttributeError("Data-access layer is already attached")
        self._models = models

    def record_routes(self, routes: List[str]) -> None:
        self._check_mutable()
        if self._routes is not None:
            raise AttributeError("Routes are already registered")
        self._routes = list(routes)

    def freeze(self) -> FastAPI:
        """
        Install the recorded pipeline on the app and block further changes.

        Starlette runs the most recently added middleware first, so steps
        are added in reverse to keep execution order equal to append order.
        """
        if self.frozen:
            return self.app
        for step in reversed(self._pipeline):
            if step.install is not None:
                step.install(self.app)
        self.frozen = True
        return self.app

    def describe(self) -> dict[str, Any]:
        return {
            "port": self._port,
            "pipeline": self.pipeline,
            "models": sorted(self._models.tables) if self._models else None,
            "routes": self.routes,
            "frozen": self.frozen,
        }

    def _check_mutable(self) -> None:
        if self.frozen:
            raise ContextFrozenError("Service context is frozen once serving begins")


__all__ = ["Installer", "PipelineStep", "ServiceContext"]
