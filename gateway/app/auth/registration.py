"""
OAuth2 client registrations.

A registration describes one identity-provider client: credentials, provider
endpoints and requested scopes. The gateway ships the Google provider
endpoints and builds its single registration from settings. When the
credentials are missing or placeholders the repository is left empty, so
every lookup fails and no login can complete.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from ..config import Settings

logger = logging.getLogger(__name__)


DEFAULT_REDIRECT_URI_TEMPLATE = "{baseUrl}/login/oauth2/code/{registrationId}"

GOOGLE_AUTHORIZATION_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://www.googleapis.com/oauth2/v4/token"
GOOGLE_USERINFO_URI = "https://www.googleapis.com/oauth2/v3/userinfo"
GOOGLE_JWKS_URI = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")


class UnknownRegistrationError(LookupError):
    """Raised when no client registration exists for a registration ID."""

    def __init__(self, registration_id: str):
        super().__init__(f"Unknown client registration: '{registration_id}'")
        self.registration_id = registration_id


@dataclass(frozen=True)
class ClientRegistration:
    """
    A configured OAuth2 client.

    Attributes:
        registration_id: Key used in /oauth2/authorization/{id} and the callback path
        client_id: OAuth2 client ID
        client_secret: OAuth2 client secret
        authorization_uri: Provider authorization endpoint
        token_uri: Provider token endpoint
        userinfo_uri: Provider userinfo endpoint
        jwks_uri: Provider signing keys
        issuers: Accepted values of the ID token 'iss' claim
        scopes: Requested scopes
        redirect_uri_template: Template for the callback URL
    """

    registration_id: str
    client_id: str
    client_secret: str
    authorization_uri: str
    token_uri: str
    userinfo_uri: str
    jwks_uri: str
    issuers: Tuple[str, ...]
    scopes: Tuple[str, ...] = ("openid", "profile", "email")
    redirect_uri_template: str = DEFAULT_REDIRECT_URI_TEMPLATE
    client_name: str = field(default="")

    def redirect_uri(self, base_url: str) -> str:
        """Expand the redirect URI template for the given base URL."""
        return (
            self.redirect_uri_template
            .replace("{baseUrl}", base_url.rstrip("/"))
            .replace("{registrationId}", self.registration_id)
        )


class ClientRegistrationRepository:
    """Read-only lookup of client registrations by ID."""

    def __init__(self, registrations: Iterable[ClientRegistration] = ()):
        self._registrations: Dict[str, ClientRegistration] = {
            registration.registration_id: registration
            for registration in registrations
        }

    def find_by_registration_id(self, registration_id: str) -> ClientRegistration:
        """
        Look up a registration.

        Raises:
            UnknownRegistrationError: If the ID is not registered
        """
        registration = self._registrations.get(registration_id)
        if registration is None:
            raise UnknownRegistrationError(registration_id)
        return registration

    def __len__(self) -> int:
        return len(self._registrations)


def google_registration(
    client_id: str,
    client_secret: str,
    registration_id: str = "google",
    scopes: Optional[Iterable[str]] = None,
) -> ClientRegistration:
    """Registration preconfigured with Google's endpoints."""
    return ClientRegistration(
        registration_id=registration_id,
        client_id=client_id,
        client_secret=client_secret,
        authorization_uri=GOOGLE_AUTHORIZATION_URI,
        token_uri=GOOGLE_TOKEN_URI,
        userinfo_uri=GOOGLE_USERINFO_URI,
        jwks_uri=GOOGLE_JWKS_URI,
        issuers=GOOGLE_ISSUERS,
        scopes=tuple(scopes) if scopes else ("openid", "profile", "email"),
        client_name="Google",
    )


def build_registration_repository(settings: Settings) -> ClientRegistrationRepository:
    """
    Build the repository from settings.

    Returns an empty repository when the Google credentials are not
    configured, which keeps every protected path unreachable.
    """
    if not settings.google_credentials_configured:
        logger.warning(
            "Google OAuth not configured - GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET required",
            extra={"registration_id": settings.OAUTH_REGISTRATION_ID},
        )
        return ClientRegistrationRepository()

    registration = google_registration(
        client_id=settings.GOOGLE_CLIENT_ID.strip(),
        client_secret=settings.GOOGLE_CLIENT_SECRET.strip(),
        registration_id=settings.OAUTH_REGISTRATION_ID,
        scopes=settings.oauth_scopes_list,
    )
    logger.info(
        "Google OAuth configured",
        extra={"registration_id": registration.registration_id},
    )
    return ClientRegistrationRepository([registration])
