"""
Authentication Gate
===================

Decides, for every request that got past CORS, whether it may reach a route
handler or must be sent through the OAuth2 login flow.

The gate is an ordered list of stages. Each stage is a plain function that
takes a GateContext and returns either None (not my concern, ask the next
stage) or a GateDecision. A decision carries the response to send (or None
to dispatch the request to its route), the resulting GateState, and the
session contents to install (or None to leave the session alone).

Stages, in order:

1. audit_origin          - DEBUG log for requests from untrusted origins
2. handle_login_entry    - /oauth2/authorization/{registrationId}
3. handle_logout         - GET|POST /logout
4. allow_exempt_path     - public paths pass through unchanged
5. require_authentication - principal present, or redirect to the provider

The stages read configuration from the context and never touch the request
or the session directly; AuthenticationGateMiddleware applies the decision.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..models import Principal
from ..origins import OriginRegistry
from .authorization import CustomizingAuthorizationRequestResolver
from .pages import render_error_page
from .registration import UnknownRegistrationError
from .session import (
    authenticating_session,
    load_principal,
    logged_out_session,
    replace_session,
    session_state,
)
from .state import GateEvent, GateState, transition

logger = logging.getLogger(__name__)


DEFAULT_EXEMPT_PATTERNS = (
    "/",
    "/error",
    "/webjars/**",
    "/actuator/health",
    "/actuator/info",
    "/login/oauth2/code/**",
)

LOGIN_ENTRY_PATTERN = re.compile(r"^/oauth2/authorization/(?P<registration_id>[^/]+)/?$")
LOGOUT_PATH = "/logout"
LOGOUT_SUCCESS_URL = "/"


# =============================================================================
# Protected Paths
# =============================================================================

class ProtectedPathSet:
    """
    Closed set of exempt path patterns; every other path is protected.

    Patterns are exact paths, or a prefix followed by ``/**`` which matches
    the prefix itself and everything below it.
    """

    def __init__(self, exempt_patterns: Iterable[str] = DEFAULT_EXEMPT_PATTERNS):
        exact = set()
        prefixes = []
        for pattern in exempt_patterns:
            if pattern.endswith("/**"):
                prefixes.append(pattern[:-3])
            else:
                exact.add(pattern)
        self._patterns = tuple(exempt_patterns)
        self._exact = frozenset(exact)
        self._prefixes = tuple(prefixes)

    @property
    def exempt_patterns(self) -> Tuple[str, ...]:
        return self._patterns

    def is_exempt(self, path: str) -> bool:
        if path in self._exact:
            return True
        return any(path == prefix or path.startswith(prefix + "/") for prefix in self._prefixes)

    def is_protected(self, path: str) -> bool:
        return not self.is_exempt(path)


# =============================================================================
# Pipeline Types
# =============================================================================

@dataclass(frozen=True)
class GateConfig:
    """Read-only collaborators shared by every request."""

    resolver: CustomizingAuthorizationRequestResolver
    registration_id: str
    origins: OriginRegistry
    protected_paths: ProtectedPathSet
    public_base_url: Optional[str] = None


@dataclass(frozen=True)
class GateContext:
    path: str
    method: str
    host: Optional[str]
    origin: Optional[str]
    base_url: str
    state: GateState
    principal: Optional[Principal]
    config: GateConfig


@dataclass(frozen=True)
class GateDecision:
    """
    Outcome of the pipeline.

    Attributes:
        state: State of the session after this request
        response: Response to send, or None to dispatch to the route
        session: Session contents to install, or None to keep the session
    """

    state: GateState
    response: Optional[Response] = None
    session: Optional[Dict[str, Any]] = None


Stage = Callable[[GateContext], Optional[GateDecision]]


# =============================================================================
# Stages
# =============================================================================

def audit_origin(ctx: GateContext) -> Optional[GateDecision]:
    if ctx.origin and not ctx.config.origins.is_trusted(ctx.origin):
        logger.debug(
            "Request from untrusted origin",
            extra={"origin": ctx.origin, "path": ctx.path},
        )
    return None


def handle_login_entry(ctx: GateContext) -> Optional[GateDecision]:
    if ctx.method != "GET":
        return None
    match = LOGIN_ENTRY_PATTERN.match(ctx.path)
    if not match:
        return None
    return start_authorization(ctx, match.group("registration_id"), GateEvent.LOGIN_REQUESTED)


def handle_logout(ctx: GateContext) -> Optional[GateDecision]:
    if ctx.path != LOGOUT_PATH or ctx.method not in ("GET", "POST"):
        return None

    new_state = transition(ctx.state, GateEvent.LOGOUT)
    logger.info("Logout", extra={"previous_state": ctx.state.value})
    return GateDecision(
        state=new_state,
        response=RedirectResponse(url=LOGOUT_SUCCESS_URL, status_code=302),
        session=logged_out_session(),
    )


def allow_exempt_path(ctx: GateContext) -> Optional[GateDecision]:
    if not ctx.config.protected_paths.is_exempt(ctx.path):
        return None
    return GateDecision(state=transition(ctx.state, GateEvent.EXEMPT_REQUEST))


def require_authentication(ctx: GateContext) -> Optional[GateDecision]:
    if ctx.principal is not None:
        return GateDecision(state=GateState.AUTHENTICATED)
    return start_authorization(ctx, ctx.config.registration_id, GateEvent.PROTECTED_REQUEST)


def start_authorization(ctx: GateContext, registration_id: str, event: GateEvent) -> GateDecision:
    """
    Redirect to the identity provider and remember the pending request.

    Fails closed: without a registration no redirect is issued and the
    session is left as it was.
    """
    try:
        request = ctx.config.resolver.resolve(registration_id, ctx.base_url)
    except UnknownRegistrationError as e:
        configured = e.registration_id == ctx.config.registration_id
        logger.error(
            "Cannot start login: no client registration",
            extra={"registration_id": e.registration_id, "path": ctx.path},
        )
        return GateDecision(
            state=ctx.state,
            response=render_error_page(
                title="Login Unavailable" if configured else "Unknown Login Provider",
                message=(
                    "Sign-in is not configured on this server. Please try again later."
                    if configured else
                    f"No login provider named '{e.registration_id}' is configured."
                ),
                retry_url=None,
                status_code=503 if configured else 400,
            ),
        )

    new_state = transition(ctx.state, event)
    logger.info(
        "Redirecting to identity provider",
        extra={"registration_id": registration_id, "path": ctx.path},
    )
    return GateDecision(
        state=new_state,
        response=RedirectResponse(url=request.authorization_request_uri, status_code=302),
        session=authenticating_session(request.to_session()),
    )


DEFAULT_STAGES: Tuple[Stage, ...] = (
    audit_origin,
    handle_login_entry,
    handle_logout,
    allow_exempt_path,
    require_authentication,
)


def run_pipeline(ctx: GateContext, stages: Sequence[Stage] = DEFAULT_STAGES) -> GateDecision:
    """Run stages in order; the first decision wins."""
    for stage in stages:
        decision = stage(ctx)
        if decision is not None:
            return decision
    return GateDecision(state=ctx.state)


# =============================================================================
# Middleware
# =============================================================================

class AuthenticationGateMiddleware(BaseHTTPMiddleware):
    """
    Runs the gate pipeline for each request.

    Must be installed inside SessionMiddleware so ``request.session`` is
    available.
    """

    def __init__(self, app, config: GateConfig, stages: Sequence[Stage] = DEFAULT_STAGES):
        super().__init__(app)
        self._config = config
        self._stages = tuple(stages)

    def build_context(self, request: Request) -> GateContext:
        session = request.session
        base_url = self._config.public_base_url or str(request.base_url)
        return GateContext(
            path=request.url.path,
            method=request.method,
            host=request.headers.get("host"),
            origin=request.headers.get("origin"),
            base_url=base_url.rstrip("/"),
            state=session_state(session),
            principal=load_principal(session),
            config=self._config,
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        decision = run_pipeline(self.build_context(request), self._stages)

        if decision.session is not None:
            replace_session(request.session, decision.session)

        if decision.response is not None:
            return decision.response
        return await call_next(request)
