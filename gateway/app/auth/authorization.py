"""
OAuth2 authorization requests.

This module builds the redirect that sends the browser to the identity
provider:

- DefaultAuthorizationRequestResolver creates the base request (state,
  nonce, PKCE challenge, scopes, redirect URI) for a registration.
- CustomizingAuthorizationRequestResolver wraps it and merges the
  provider-specific AuthorizationRequestParameters (prompt, access_type)
  into every request.
"""

import base64
import hashlib
import secrets
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode

from .registration import ClientRegistrationRepository


# Parameters owned by the OAuth2/OIDC protocol; extensions may not set them
RESERVED_PARAMETERS = frozenset({
    "client_id",
    "redirect_uri",
    "response_type",
    "scope",
    "state",
    "nonce",
    "code_challenge",
    "code_challenge_method",
})


# =============================================================================
# PKCE Helper Functions
# =============================================================================

def generate_code_verifier() -> str:
    """
    Generate a cryptographically random code verifier for PKCE.

    Returns:
        Base64-URL-encoded random string (43-128 characters)
    """
    verifier_bytes = secrets.token_bytes(32)
    return base64.urlsafe_b64encode(verifier_bytes).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    """
    Generate code challenge from verifier using S256 method.

    Args:
        verifier: Code verifier string

    Returns:
        Base64-URL-encoded SHA256 hash of verifier
    """
    digest = hashlib.sha256(verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8").rstrip("=")


# =============================================================================
# Authorization Request
# =============================================================================

@dataclass(frozen=True)
class OAuth2AuthorizationRequest:
    """
    Outbound authorization request.

    ``additional_parameters`` holds the provider extension parameters and is
    the only part a customizer may change. ``attributes`` holds values that
    stay on the server (nonce, PKCE verifier) and are kept in the session
    until the callback.
    """

    registration_id: str
    authorization_uri: str
    client_id: str
    redirect_uri: str
    scopes: Tuple[str, ...]
    state: str
    response_type: str = "code"
    additional_parameters: Mapping[str, str] = field(default_factory=dict)
    attributes: Mapping[str, str] = field(default_factory=dict)

    @property
    def nonce(self) -> Optional[str]:
        return self.attributes.get("nonce")

    @property
    def code_verifier(self) -> Optional[str]:
        return self.attributes.get("code_verifier")

    def query_parameters(self) -> Dict[str, str]:
        """Protocol parameters first, then extension parameters."""
        params = {
            "response_type": self.response_type,
            "client_id": self.client_id,
            "scope": " ".join(self.scopes),
            "state": self.state,
            "redirect_uri": self.redirect_uri,
        }
        if self.nonce:
            params["nonce"] = self.nonce
        if self.code_verifier:
            params["code_challenge"] = generate_code_challenge(self.code_verifier)
            params["code_challenge_method"] = "S256"
        for key, value in self.additional_parameters.items():
            params.setdefault(key, value)
        return params

    @property
    def authorization_request_uri(self) -> str:
        return f"{self.authorization_uri}?{urlencode(self.query_parameters())}"

    def to_session(self) -> Dict[str, str]:
        """Values needed to validate the callback."""
        return {
            "registration_id": self.registration_id,
            "state": self.state,
            "redirect_uri": self.redirect_uri,
            "nonce": self.nonce or "",
            "code_verifier": self.code_verifier or "",
        }


# =============================================================================
# Resolvers
# =============================================================================

class DefaultAuthorizationRequestResolver:
    """Builds base authorization requests from client registrations."""

    def __init__(self, registrations: ClientRegistrationRepository):
        self._registrations = registrations

    def resolve(self, registration_id: str, base_url: str) -> OAuth2AuthorizationRequest:
        """
        Build a fresh authorization request.

        Args:
            registration_id: Client registration to use
            base_url: Externally visible base URL of the gateway

        Returns:
            Request with new state, nonce and PKCE verifier

        Raises:
            UnknownRegistrationError: If the registration does not exist
        """
        registration = self._registrations.find_by_registration_id(registration_id)

        attributes = {"code_verifier": generate_code_verifier()}
        if "openid" in registration.scopes:
            attributes["nonce"] = secrets.token_urlsafe(32)

        return OAuth2AuthorizationRequest(
            registration_id=registration.registration_id,
            authorization_uri=registration.authorization_uri,
            client_id=registration.client_id,
            redirect_uri=registration.redirect_uri(base_url),
            scopes=registration.scopes,
            state=secrets.token_urlsafe(32),
            attributes=MappingProxyType(attributes),
        )


@dataclass(frozen=True)
class AuthorizationRequestParameters:
    """
    Provider-specific parameters added to every authorization redirect.

    Raises:
        ValueError: If a protocol parameter is included
    """

    values: Mapping[str, str]

    def __post_init__(self):
        reserved = sorted(set(self.values) & RESERVED_PARAMETERS)
        if reserved:
            raise ValueError(
                f"Protocol parameters cannot be customized: {', '.join(reserved)}"
            )
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @classmethod
    def from_settings(cls, prompt: Optional[str], access_type: Optional[str]) -> "AuthorizationRequestParameters":
        values = {}
        if prompt:
            values["prompt"] = prompt
        if access_type:
            values["access_type"] = access_type
        return cls(values)

    def apply(self, request: OAuth2AuthorizationRequest) -> OAuth2AuthorizationRequest:
        """
        Merge the parameters into a request.

        Only ``additional_parameters`` changes, so applying twice gives the
        same request as applying once.
        """
        merged = dict(request.additional_parameters)
        merged.update(self.values)
        return replace(request, additional_parameters=MappingProxyType(merged))


class CustomizingAuthorizationRequestResolver:
    """
    Wraps the default resolver and customizes every request it builds.

    Failures of the wrapped resolver propagate unchanged.
    """

    def __init__(
        self,
        default_resolver: DefaultAuthorizationRequestResolver,
        parameters: AuthorizationRequestParameters,
    ):
        self._default_resolver = default_resolver
        self._parameters = parameters

    @property
    def parameters(self) -> AuthorizationRequestParameters:
        return self._parameters

    def resolve(self, registration_id: str, base_url: str) -> OAuth2AuthorizationRequest:
        request = self._default_resolver.resolve(registration_id, base_url)
        return self._parameters.apply(request)
