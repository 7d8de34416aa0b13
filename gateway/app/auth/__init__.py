"""
Authentication Package

This package handles authentication for the gateway using Google as an
OpenID Connect identity provider.

Key responsibilities:
- Client registrations for the identity provider
- Authorization redirects, customized with provider-specific parameters
- The authentication gate that protects every non-public path
- Callback handling: code exchange, ID token verification via JWKS
- Post-login redirect to the front end matching the request host

Modules:
- registration: Client registrations and the registration repository
- authorization: Authorization request resolvers and PKCE helpers
- gate: Authentication gate stages and middleware
- state: Authentication state machine
- session: Principal and pending-request storage in the session cookie
- redirect: Post-login redirect resolution
- routes: OAuth2 callback and error page
- utils: Token exchange, JWKS fetching/caching and ID token verification

The authentication flow:
1. Browser requests a protected path without a session principal
2. Gate redirects to Google with prompt/access_type added
3. Google redirects back to /login/oauth2/code/{registrationId}
4. Gateway exchanges the code, verifies the ID token, stores the principal
5. Browser is redirected to {frontend origin}/home
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
