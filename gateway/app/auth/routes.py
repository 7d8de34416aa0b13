"""
Authentication routes for the OAuth2 callback and the error page.

The login redirect and logout are handled by the authentication gate; the
callback is a regular (exempt) route because it awaits the identity
provider's token endpoint.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, Response
from jose import JWTError

from ..models import Principal
from .pages import render_error_page
from .redirect import PostLoginRedirectResolver
from .registration import ClientRegistrationRepository, UnknownRegistrationError
from .session import (
    anonymous_session,
    authenticated_session,
    load_pending_authorization,
    replace_session,
    session_state,
)
from .state import GateEvent, GateState, transition
from .utils import AuthenticationFailedError, IdentityProviderClient

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(tags=["authentication"])


_ERROR_TITLES = {
    400: "Invalid Request",
    401: "Authentication Failed",
    503: "Login Unavailable",
}


# =============================================================================
# Callback Endpoint
# =============================================================================

@auth_router.get("/login/oauth2/code/{registration_id}", response_class=HTMLResponse)
async def callback(
    request: Request,
    registration_id: str,
    code: Optional[str] = Query(None, description="Authorization code from the identity provider"),
    state: Optional[str] = Query(None, description="State parameter for CSRF protection"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
) -> Response:
    """
    Handle the OAuth2 redirect back from the identity provider.

    This endpoint:
    1. Rejects provider errors and requests without code/state
    2. Validates state against the pending authorization request
    3. Exchanges the authorization code (with PKCE verifier) for tokens
    4. Verifies the ID token, or falls back to the userinfo endpoint
    5. Stores the principal in the session
    6. Redirects to the front end that matches the request host

    On any failure no principal is stored and an error page is returned.
    """
    current_state = session_state(request.session)

    try:
        principal = await _complete_authorization(
            request,
            registration_id=registration_id,
            code=code,
            state=state,
            error=error,
            error_description=error_description,
        )
    except AuthenticationFailedError as e:
        logger.warning(
            f"Login failed: {e.message}",
            extra={"error": e.error, "registration_id": registration_id},
        )
        if current_state is GateState.AUTHENTICATING:
            transition(current_state, GateEvent.CALLBACK_FAILED)
            replace_session(request.session, anonymous_session())
        return render_error_page(
            title=_ERROR_TITLES.get(e.status_code, "Authentication Error"),
            message=e.message,
            retry_url=f"/oauth2/authorization/{registration_id}",
            status_code=e.status_code,
        )

    transition(current_state, GateEvent.CALLBACK_SUCCEEDED)
    replace_session(request.session, authenticated_session(principal))

    resolver: PostLoginRedirectResolver = request.app.state.redirect_resolver
    return resolver.redirect(request.headers.get("host"), principal)


async def _complete_authorization(
    request: Request,
    registration_id: str,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
    error_description: Optional[str],
) -> Principal:
    """
    Run the callback checks and the token exchange.

    Raises:
        AuthenticationFailedError: On any failure
    """
    if error:
        raise AuthenticationFailedError(
            error, f"Unable to authenticate: {error_description or error}", status_code=401
        )

    if not code or not state:
        raise AuthenticationFailedError(
            "invalid_request", "Missing required parameters (code or state)", status_code=400
        )

    pending = load_pending_authorization(request.session)
    if (
        pending is None
        or pending.get("state") != state
        or pending.get("registration_id") != registration_id
    ):
        raise AuthenticationFailedError(
            "invalid_state",
            "Invalid state parameter. This may be a CSRF attack or expired session.",
            status_code=400,
        )

    registrations: ClientRegistrationRepository = request.app.state.registrations
    idp_client: IdentityProviderClient = request.app.state.idp_client

    try:
        registration = registrations.find_by_registration_id(registration_id)
    except UnknownRegistrationError:
        raise AuthenticationFailedError(
            "unknown_registration", "Sign-in is not configured on this server.", status_code=503
        )

    try:
        token_response = await idp_client.exchange_code_for_tokens(
            registration,
            code=code,
            redirect_uri=pending["redirect_uri"],
            code_verifier=pending.get("code_verifier") or None,
        )
    except httpx.HTTPError as e:
        logger.error(f"Token endpoint unreachable: {e}", extra={"registration_id": registration_id})
        raise AuthenticationFailedError(
            "invalid_token_response", "Unable to communicate with the sign-in service."
        )

    id_token = token_response.get("id_token")
    try:
        if id_token:
            claims = await idp_client.verify_id_token(
                registration,
                id_token,
                nonce=pending.get("nonce") or None,
                access_token=token_response.get("access_token"),
            )
        else:
            claims = await idp_client.fetch_userinfo(registration, token_response["access_token"])
        return Principal.from_claims(claims)
    except (JWTError, ValueError) as e:
        raise AuthenticationFailedError("invalid_id_token", f"Unable to verify identity token: {e}")
    except httpx.HTTPError as e:
        raise AuthenticationFailedError(
            "invalid_user_info_response", f"Unable to retrieve user information: {e}"
        )


# =============================================================================
# Error Page
# =============================================================================

@auth_router.get("/error", response_class=HTMLResponse)
async def error_page() -> HTMLResponse:
    return render_error_page(
        title="Something Went Wrong",
        message="The request could not be completed.",
        status_code=200,
    )
