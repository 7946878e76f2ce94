"""
Request pipeline building blocks installed during bring-up.

* `middleware` - body limit, security headers, request context
* `cors` - allowed-origin computation and CORS policy
* `faults` - terminal error handling
"""

from __future__ import annotations

from sampleapp.server.cors import CorsPolicy, PolicyMiddleware, compute_allowed_origins
from sampleapp.server.faults import FaultBoundary, FaultBoundaryMiddleware, FaultHandler
from sampleapp.server.middleware import (
    BodyLimitMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
)

__all__ = [
    "BodyLimitMiddleware",
    "CorsPolicy",
    "FaultBoundary",
    "FaultBoundaryMiddleware",
    "FaultHandler",
    "PolicyMiddleware",
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
    "compute_allowed_origins",
]
