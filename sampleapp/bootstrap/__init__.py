"""
Ordered, fail-fast bring-up of the SampleApp API.

Stages (in order): transport, persistence, observability, cors, routes,
error-handler; then listen. See `bootstrapper.Bootstrapper`.
"""

from sampleapp.bootstrap.bootstrapper import Bootstrapper, Stage, build_app
from sampleapp.bootstrap.context import PipelineStep, ServiceContext
from sampleapp.bootstrap.exceptions import (
    BootstrapError,
    BootTransitionError,
    ContextFrozenError,
    InitError,
    RouteRegistrationError,
)
from sampleapp.bootstrap.lifecycle import BootState, can_transition
from sampleapp.bootstrap.result import Err, Ok, Result

__all__ = [
    "BootState",
    "BootTransitionError",
    "Bootstrapper",
    "BootstrapError",
    "ContextFrozenError",
    "Err",
    "InitError",
    "Ok",
    "PipelineStep",
    "Result",
    "RouteRegistrationError",
    "ServiceContext",
    "Stage",
    "build_app",
    "can_transition",
]
