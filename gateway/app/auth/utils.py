"""
Identity-provider utilities: code exchange, JWKS management and ID token
verification.

This module handles:
- Exchanging the authorization code (plus PKCE verifier) for tokens
- Fetching and caching the provider JWKS (JSON Web Key Set)
- Verifying ID tokens and validating their claims
- Falling back to the userinfo endpoint when no ID token is returned
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

import httpx
from jose import jwk, jwt, JWTError
from jose.exceptions import ExpiredSignatureError, JWTClaimsError

from .registration import ClientRegistration

logger = logging.getLogger(__name__)


class AuthenticationFailedError(Exception):
    """
    Raised when the callback cannot produce a principal.

    Attributes:
        error: OAuth2-style error code (e.g. 'invalid_state', 'access_denied')
        status_code: HTTP status for the error page
    """

    def __init__(self, error: str, message: str, status_code: int = 401):
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code


class IdentityProviderClient:
    """
    HTTP client for the identity provider's token, JWKS and userinfo endpoints.

    Timeouts come from the HTTP client configuration; the JWKS cache is per
    process and keyed by JWKS URI.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        jwks_cache_seconds: int = 3600,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._jwks_cache_seconds = jwks_cache_seconds
        self._transport = transport
        self._jwks_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    # =========================================================================
    # Token Exchange
    # =========================================================================

    async def exchange_code_for_tokens(
        self,
        registration: ClientRegistration,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Exchange authorization code for access and ID tokens.

        Args:
            registration: Client registration
            code: Authorization code from callback
            redirect_uri: Redirect URI (must match the one used at login)
            code_verifier: PKCE code verifier

        Returns:
            Token response dictionary containing access_token, id_token, etc.

        Raises:
            AuthenticationFailedError: If the provider rejects the exchange
            httpx.HTTPError: If the token endpoint is unreachable
        """
        payload = {
            "client_id": registration.client_id,
            "client_secret": registration.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }

        if code_verifier:
            payload["code_verifier"] = code_verifier

        async with self._client() as client:
            response = await client.post(
                registration.token_uri,
                data=payload,
                headers={"Accept": "application/json"},
            )

        if not response.is_success:
            error_data = {}
            if response.headers.get("content-type", "").startswith("application/json"):
                try:
                    error_data = response.json()
                except ValueError:
                    error_data = {}
            if not isinstance(error_data, dict):
                error_data = {}
            error_msg = (
                error_data.get("error_description")
                or error_data.get("error")
                or "Token exchange failed"
            )
            logger.warning(
                f"Token exchange rejected: {error_msg}",
                extra={"status_code": response.status_code},
            )
            raise AuthenticationFailedError("invalid_token_response", f"Token exchange failed: {error_msg}")

        try:
            token_data = response.json()
        except ValueError:
            raise AuthenticationFailedError(
                "invalid_token_response", "Token response is not valid JSON"
            )

        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise AuthenticationFailedError("invalid_token_response", "Token response missing access_token")

        return token_data

    # =========================================================================
    # JWKS
    # =========================================================================

    async def fetch_jwks(self, jwks_uri: str, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Fetch JWKS with caching.

        Args:
            jwks_uri: Provider JWKS endpoint
            force_refresh: If True, bypass cache and fetch fresh JWKS

        Returns:
            JWKS document containing keys

        Raises:
            httpx.HTTPError: If JWKS endpoint is unreachable
            ValueError: If response is invalid
        """
        current_time = time.time()
        cached = self._jwks_cache.get(jwks_uri)

        if not force_refresh and cached and (current_time - cached[0]) < self._jwks_cache_seconds:
            return cached[1]

        async with self._client() as client:
            response = await client.get(jwks_uri)
            response.raise_for_status()
            jwks_data = response.json()

        if "keys" not in jwks_data:
            raise ValueError("Invalid JWKS response: missing 'keys' field")

        self._jwks_cache[jwks_uri] = (current_time, jwks_data)
        return jwks_data

    def clear_jwks_cache(self) -> None:
        self._jwks_cache.clear()

    # =========================================================================
    # ID Token Verification
    # =========================================================================

    async def verify_id_token(
        self,
        registration: ClientRegistration,
        id_token: str,
        nonce: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Verify and decode an ID token.

        Performs:
        1. Key lookup in the provider JWKS (refreshing once on unknown kid)
        2. Signature, audience, expiry and not-before validation
        3. Issuer validation against the registration
        4. Nonce validation against the pending authorization request

        Returns:
            Dictionary of verified token claims

        Raises:
            JWTError: If token is invalid, expired, or signature doesn't match
            ValueError: If issuer or nonce are invalid
            httpx.HTTPError: If JWKS endpoint is unreachable
        """
        jwks = await self.fetch_jwks(registration.jwks_uri)

        signing_key = get_signing_key(id_token, jwks)
        if not signing_key:
            # Keys may have rotated
            jwks = await self.fetch_jwks(registration.jwks_uri, force_refresh=True)
            signing_key = get_signing_key(id_token, jwks)

            if not signing_key:
                raise JWTError("Unable to find matching signing key in JWKS")

        try:
            public_key = jwk.construct(signing_key, algorithm=signing_key.get("alg", "RS256"))
        except Exception as e:
            raise JWTError(f"Failed to construct public key from JWK: {e}")

        try:
            claims = jwt.decode(
                id_token,
                public_key.to_pem().decode("utf-8"),
                algorithms=["RS256"],
                audience=registration.client_id,
                access_token=access_token,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_iat": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "verify_sub": True,
                    "verify_jti": False,
                    "verify_at_hash": bool(access_token),
                    "leeway": 10,
                },
            )
        except ExpiredSignatureError:
            raise JWTError("ID token has expired")
        except JWTClaimsError as e:
            raise JWTError(f"Invalid token claims: {e}")

        issuer = claims.get("iss", "")
        if issuer not in registration.issuers:
            raise ValueError(f"Invalid issuer: {issuer}")

        if nonce and claims.get("nonce") != nonce:
            raise ValueError("Nonce mismatch")

        return claims

    # =========================================================================
    # Userinfo
    # =========================================================================

    async def fetch_userinfo(self, registration: ClientRegistration, access_token: str) -> Dict[str, Any]:
        """
        Fetch user attributes with the access token.

        Raises:
            httpx.HTTPStatusError: If the provider rejects the token
            ValueError: If the response is not a JSON object
        """
        async with self._client() as client:
            response = await client.get(
                registration.userinfo_uri,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            claims = response.json()

        if not isinstance(claims, dict):
            raise ValueError("Invalid userinfo response: expected a JSON object")
        return claims


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Extract the public key from JWKS that matches the token's kid.

    Returns:
        Matching key from JWKS, or None if not found

    Raises:
        JWTError: If token header is malformed
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise JWTError(f"Failed to decode token header: {e}")

    kid = unverified_header.get("kid")
    if not kid:
        raise JWTError("Token header missing 'kid' (Key ID)")

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    return None
