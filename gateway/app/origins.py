"""
Origin Registry
===============

Static allow-list of trusted front-end origins plus the ordered host rules
that map the Host header of an inbound request to the front-end origin that
belongs to the same deployment (local dev, staging, production).

The registry is built once at startup and is read-only afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostToOriginRule:
    """Maps any Host header containing ``pattern`` to ``origin``."""

    pattern: str
    origin: str

    def matches(self, host: str) -> bool:
        return self.pattern in host


class OriginRegistry:
    """
    Trusted front-end origins and host-to-origin resolution.

    Rules are evaluated in declaration order and the first match wins; the
    default origin is the implicit last rule. Every rule target and the
    default must be trusted origins, so resolution can never produce an
    origin outside the allow-list.

    Attributes:
        trusted_origins: Trusted origins in declaration order
        rules: Ordered host rules
        default_origin: Origin returned when no rule matches
    """

    def __init__(
        self,
        trusted_origins: Iterable[str],
        rules: Iterable[HostToOriginRule],
        default_origin: str,
    ):
        origins = tuple(trusted_origins)
        if not origins:
            raise ValueError("At least one trusted origin is required")

        duplicates = sorted({o for o in origins if origins.count(o) > 1})
        if duplicates:
            raise ValueError(f"Duplicate trusted origins: {', '.join(duplicates)}")

        rules = tuple(rules)
        for rule in rules:
            if not rule.pattern:
                raise ValueError("Host rule pattern cannot be empty")
            if rule.origin not in origins:
                raise ValueError(
                    f"Host rule '{rule.pattern}' targets untrusted origin '{rule.origin}'"
                )

        if default_origin not in origins:
            raise ValueError(f"Default origin '{default_origin}' is not a trusted origin")

        self._trusted_origins: Tuple[str, ...] = origins
        self._rules: Tuple[HostToOriginRule, ...] = rules
        self._default_origin = default_origin

    @property
    def trusted_origins(self) -> Tuple[str, ...]:
        return self._trusted_origins

    @property
    def default_origin(self) -> str:
        return self._default_origin

    def is_trusted(self, origin: Optional[str]) -> bool:
        """Exact match against the allow-list."""
        return origin is not None and origin in self._trusted_origins

    def resolve_frontend_origin(self, request_host: Optional[str]) -> str:
        """
        Resolve the trusted front-end origin for an inbound Host header.

        Never raises: an absent or unrecognised host resolves to the
        default origin.

        Args:
            request_host: Value of the Host header, may be None

        Returns:
            A trusted origin
        """
        if request_host:
            for rule in self._rules:
                if rule.matches(request_host):
                    return rule.origin

        logger.debug(
            "No host rule matched, using default origin",
            extra={"host": request_host, "origin": self._default_origin},
        )
        return self._default_origin


def build_origin_registry(settings: Settings) -> OriginRegistry:
    """
    Create the registry from settings.

    Raises:
        ValueError: If rules or the default point outside the allow-list
    """
    rules: Sequence[HostToOriginRule] = [
        HostToOriginRule(pattern=pattern, origin=origin)
        for pattern, origin in settings.host_origin_rules_list
    ]
    return OriginRegistry(
        trusted_origins=settings.trusted_origins_list,
        rules=rules,
        default_origin=settings.DEFAULT_FRONTEND_ORIGIN.rstrip("/"),
    )
