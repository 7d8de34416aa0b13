"""
CORS configuration for the gateway.

The policy covers every path (``/**``): the trusted origins from the
OriginRegistry, the methods the SPA uses, any request header, and
credentials. Credentialed CORS needs an explicit origin list, so a wildcard
origin is refused outright.

Enforcement is Starlette's CORSMiddleware, installed as the outermost layer.
A request from an unlisted origin is still served; it simply gets no
Access-Control-Allow-* headers and the browser blocks the read.
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .origins import OriginRegistry

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")


@dataclass(frozen=True)
class CorsPolicy:
    """Immutable CORS policy applied to ``/**``."""

    allowed_origins: Tuple[str, ...]
    allowed_methods: Tuple[str, ...] = ALLOWED_METHODS
    allowed_headers: Tuple[str, ...] = ("*",)
    allow_credentials: bool = True

    def __post_init__(self):
        if self.allow_credentials and "*" in self.allowed_origins:
            raise ValueError("Wildcard origins cannot be used with credentialed CORS")

    def allows_origin(self, origin: str) -> bool:
        return origin in self.allowed_origins

    def middleware_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``app.add_middleware(CORSMiddleware, ...)``."""
        return {
            "allow_origins": list(self.allowed_origins),
            "allow_credentials": self.allow_credentials,
            "allow_methods": list(self.allowed_methods),
            "allow_headers": list(self.allowed_headers),
        }


def build_cors_policy(registry: OriginRegistry) -> CorsPolicy:
    return CorsPolicy(allowed_origins=registry.trusted_origins)
