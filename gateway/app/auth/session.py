"""
Session Storage Module
======================

Reads and writes the authentication data kept in the signed session cookie
(Starlette SessionMiddleware):

- the authenticated principal, once the callback has completed;
- the pending authorization request (state, nonce, PKCE verifier) between
  the redirect to the identity provider and the callback.

Nothing here is persisted server-side; the cookie is the whole session.
The principal reaches route handlers through the ``current_principal``
dependency, as an explicit parameter.
"""

import logging
from typing import Any, Dict, Mapping, MutableMapping, Optional

from fastapi import Request
from pydantic import ValidationError

from ..models import Principal
from .state import GateState

logger = logging.getLogger(__name__)


PRINCIPAL_KEY = "principal"
PENDING_AUTHORIZATION_KEY = "oauth2_authorization_request"
LOGGED_OUT_KEY = "logged_out"


# =============================================================================
# Principal
# =============================================================================

def load_principal(session: Mapping[str, Any]) -> Optional[Principal]:
    """
    Read the principal from session data.

    A malformed entry is treated as no principal.
    """
    data = session.get(PRINCIPAL_KEY)
    if not data:
        return None

    try:
        return Principal.model_validate(data)
    except ValidationError:
        logger.warning("Discarding malformed principal in session")
        return None


def authenticated_session(principal: Principal) -> Dict[str, Any]:
    """Session contents after a successful login."""
    return {PRINCIPAL_KEY: principal.model_dump()}


# =============================================================================
# Pending Authorization Request
# =============================================================================

def load_pending_authorization(session: Mapping[str, Any]) -> Optional[Dict[str, str]]:
    data = session.get(PENDING_AUTHORIZATION_KEY)
    if not isinstance(data, dict) or not data.get("state"):
        return None
    return data


def authenticating_session(pending: Dict[str, str]) -> Dict[str, Any]:
    """
    Session contents while the browser is at the identity provider.

    Any previous principal is dropped so a failed callback cannot leave one
    behind.
    """
    return {PENDING_AUTHORIZATION_KEY: dict(pending)}


def logged_out_session() -> Dict[str, Any]:
    return {LOGGED_OUT_KEY: True}


def anonymous_session() -> Dict[str, Any]:
    return {}


def replace_session(session: MutableMapping[str, Any], contents: Mapping[str, Any]) -> None:
    """Replace the whole session; an empty mapping clears it."""
    session.clear()
    session.update(contents)


def session_state(session: Mapping[str, Any]) -> GateState:
    """Read the authentication state back from the session contents."""
    if load_principal(session) is not None:
        return GateState.AUTHENTICATED
    if load_pending_authorization(session) is not None:
        return GateState.AUTHENTICATING
    if session.get(LOGGED_OUT_KEY):
        return GateState.LOGGED_OUT
    return GateState.ANONYMOUS


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def current_principal(request: Request) -> Optional[Principal]:
    """
    FastAPI dependency returning the session principal, or None.

    Usage in routes:
        @router.get("/api/user")
        async def user(principal: Optional[Principal] = Depends(current_principal)):
            ...
    """
    if "session" not in request.scope:
        return None
    return load_principal(request.session)


__all__ = [
    "PRINCIPAL_KEY",
    "PENDING_AUTHORIZATION_KEY",
    "LOGGED_OUT_KEY",
    "load_principal",
    "authenticated_session",
    "load_pending_authorization",
    "authenticating_session",
    "logged_out_session",
    "anonymous_session",
    "replace_session",
    "session_state",
    "current_principal",
]
