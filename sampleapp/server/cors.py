"""
Cross-origin policy: allowed-origin computation and middleware options.

The allowed origins are the cross-product of a small set of protocols and
domains. They are recomputed on every bring-up from the configured
`OriginPolicy`; nothing is cached between runs.

`PolicyMiddleware` installs the policy. Preflight requests are answered
by Starlette's CORSMiddleware; any other OPTIONS request gets an empty
204 before reaching the router.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

ALLOWED_HEADERS: List[str] = [
    "Origin",
    "X-Requested-With",
    "Content-Type",
    "Accept",
    "Authorization",
    "If-None-Match",
]
ALLOWED_METHODS: List[str] = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]
PREFLIGHT_MAX_AGE = 60 * 10


def compute_allowed_origins(protocols: Sequence[str], domains: Sequence[str]) -> List[str]:
    """
    Expand protocols x domains into origin strings, protocol-major.

    Example:
        >>> compute_allowed_origins(["http://", "https://"], ["localhost"])
        ['http://localhost', 'https://localhost']
    """
    origins: List[str] = []
    for protocol in protocols:
        for domain in domains:
            origin = f"{protocol}{domain}"
            if origin not in origins:
                origins.append(origin)
    return origins


def origin_regex(origins: Sequence[str]) -> str:
    """Anchored pattern matching any origin, optionally followed by a port."""
    alternatives = "|".join(re.escape(origin) for origin in origins)
    return rf"^(?:{alternatives})(?::\d{{1,5}})?$"


@dataclass(frozen=True)
class CorsPolicy:
    """Options handed to Starlette's CORSMiddleware."""

    allow_origins: List[str]
    allow_headers: List[str] = field(default_factory=lambda: list(ALLOWED_HEADERS))
    allow_methods: List[str] = field(default_factory=lambda: list(ALLOWED_METHODS))
    allow_credentials: bool = True
    max_age: int = PREFLIGHT_MAX_AGE

    def is_allowed(self, origin: str) -> bool:
        return re.fullmatch(origin_regex(self.allow_origins), origin) is not None

    def middleware_options(self) -> Dict[str, Any]:
        return {
            "allow_origins": list(self.allow_origins),
            "allow_origin_regex": origin_regex(self.allow_origins),
            "allow_methods": list(self.allow_methods),
            "allow_headers": list(self.allow_headers),
            "allow_credentials": self.allow_credentials,
            "max_age": self.max_age,
        }


class _OptionsResponder:
    """Answer OPTIONS with 204; pass everything else through."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            await Response(status_code=204)(scope, receive, send)
            return
        await self.app(scope, receive, send)


class PolicyMiddleware(CORSMiddleware):
    """CORSMiddleware that also answers plain (non-preflight) OPTIONS requests."""

    def __init__(self, app: ASGIApp, **options: Any) -> None:
        super().__init__(_OptionsResponder(app), **options)


__all__ = [
    "ALLOWED_HEADERS",
    "ALLOWED_METHODS",
    "CorsPolicy",
    "PolicyMiddleware",
    "PREFLIGHT_MAX_AGE",
    "compute_allowed_origins",
    "origin_regex",
]
