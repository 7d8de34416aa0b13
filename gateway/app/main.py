"""
FastAPI Gateway Application Factory
===================================

This is the main entry point for the gateway that sits between the
SpeechMate single-page application and the identity provider.

Architecture:
    Browser (SPA) → Gateway (this service) → Google (OpenID Connect)

Request pipeline (outermost first):
    1. CORSMiddleware               : trusted-origin allow-list, credentials
    2. SessionMiddleware            : signed session cookie
    3. AuthenticationGateMiddleware : login entry, logout, exempt paths,
                                      authentication check
    4. Routes

Routers:
    - /login/oauth2/code/{id} : OAuth2 callback
    - /error                  : Error page
    - /api/*                  : User and configuration endpoints (protected)
    - /actuator/*             : Health and info probes

Environment Variables Required:
    - GOOGLE_CLIENT_ID: Google OAuth2 client ID
    - GOOGLE_CLIENT_SECRET: Google OAuth2 client secret
    - SESSION_SECRET_KEY: Secret for signing the session cookie
    - TRUSTED_ORIGINS: Comma-separated front-end origins (optional, has defaults)
    - HOST_ORIGIN_RULES: Comma-separated 'host=origin' rules (optional, has defaults)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn gateway.app.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn gateway.app.main:app --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn gateway.app.main:app --reload
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

from gateway.app import __version__
from gateway.app.api import api_router
from gateway.app.auth import auth_router
from gateway.app.auth.authorization import (
    AuthorizationRequestParameters,
    CustomizingAuthorizationRequestResolver,
    DefaultAuthorizationRequestResolver,
)
from gateway.app.auth.gate import AuthenticationGateMiddleware, GateConfig, ProtectedPathSet
from gateway.app.auth.redirect import PostLoginRedirectResolver
from gateway.app.auth.registration import build_registration_repository
from gateway.app.auth.utils import IdentityProviderClient
from gateway.app.config import Settings, get_settings, validate_configuration
from gateway.app.cors import build_cors_policy
from gateway.app.models import ErrorResponse, HealthResponse, InfoResponse
from gateway.app.origins import build_origin_registry

SERVICE_NAME = "speechmate-gateway"
SERVICE_DESCRIPTION = "OAuth2 login gateway and CORS front door for the SpeechMate web app"


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Report configuration problems (missing credentials, default secret)

    Shutdown tasks:
        - Clear the JWKS cache
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("gateway.main")

    status = validate_configuration(settings)
    for error in status["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in status["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    logger.info(
        "Gateway service started",
        extra={
            "service": SERVICE_NAME,
            "version": __version__,
            "registration_id": status["registration_id"],
            "trusted_origins": status["trusted_origins"],
            "configuration_valid": status["valid"],
        }
    )

    yield

    logger.info("Shutting down gateway service")
    app.state.idp_client.clear_jwks_cache()
    logger.info("Gateway service shutdown complete")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    idp_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory function.

    Builds the read-only collaborators once (origin registry, CORS policy,
    client registrations, authorization request resolvers, redirect
    resolver) and wires the middleware stack and routes.

    Args:
        settings: Settings to use; loaded from the environment if omitted
        idp_transport: Optional httpx transport for identity-provider calls

    Returns:
        FastAPI: Configured application instance

    Raises:
        ValueError: If the origin configuration is inconsistent
    """
    settings = settings or get_settings()

    origin_registry = build_origin_registry(settings)
    cors_policy = build_cors_policy(origin_registry)
    registrations = build_registration_repository(settings)

    authorization_resolver = CustomizingAuthorizationRequestResolver(
        DefaultAuthorizationRequestResolver(registrations),
        AuthorizationRequestParameters.from_settings(
            prompt=settings.OAUTH_PROMPT,
            access_type=settings.OAUTH_ACCESS_TYPE,
        ),
    )

    app = FastAPI(
        title="SpeechMate Gateway",
        description=SERVICE_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    app.state.origin_registry = origin_registry
    app.state.registrations = registrations
    app.state.authorization_resolver = authorization_resolver
    app.state.redirect_resolver = PostLoginRedirectResolver(origin_registry, settings.POST_LOGIN_PATH)
    app.state.idp_client = IdentityProviderClient(
        timeout=settings.IDP_HTTP_TIMEOUT_SECONDS,
        jwks_cache_seconds=settings.JWKS_CACHE_SECONDS,
        transport=idp_transport,
    )

    # Middleware added last runs first: gate, then session, then CORS
    app.add_middleware(
        AuthenticationGateMiddleware,
        config=GateConfig(
            resolver=authorization_resolver,
            registration_id=settings.OAUTH_REGISTRATION_ID,
            origins=origin_registry,
            protected_paths=ProtectedPathSet(),
            public_base_url=settings.PUBLIC_BASE_URL,
        ),
    )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET_KEY,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        same_site=settings.SESSION_SAME_SITE,
        https_only=settings.SESSION_HTTPS_ONLY,
    )

    app.add_middleware(CORSMiddleware, **cors_policy.middleware_options())

    # Mount routers
    app.include_router(auth_router)
    app.include_router(api_router)

    if settings.WEBJARS_DIRECTORY:
        app.mount("/webjars", StaticFiles(directory=settings.WEBJARS_DIRECTORY), name="webjars")

    # Health check endpoint
    @app.get("/actuator/health", response_model=HealthResponse, tags=["System"])
    async def health_check() -> HealthResponse:
        """
        Liveness probe.

        The gateway is UP even without a client registration; the component
        map reports whether login can currently succeed.
        """
        return HealthResponse(
            status="UP",
            components={
                "clientRegistration": "UP" if len(registrations) else "UNCONFIGURED",
            },
        )

    @app.get("/actuator/info", response_model=InfoResponse, tags=["System"])
    async def info() -> InfoResponse:
        return InfoResponse(
            service=SERVICE_NAME,
            version=__version__,
            description=SERVICE_DESCRIPTION,
        )

    # Root endpoint, also the logout landing page
    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """
        Root endpoint with service information.

        Returns:
            dict: Service metadata and available endpoints
        """
        return {
            "service": SERVICE_NAME,
            "version": __version__,
            "description": SERVICE_DESCRIPTION,
            "endpoints": {
                "login": f"/oauth2/authorization/{settings.OAUTH_REGISTRATION_ID}",
                "logout": "/logout",
                "user": "/api/user",
                "health": "/actuator/health",
            }
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logger = logging.getLogger("gateway.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        error = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            detail=str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
        )
        return JSONResponse(status_code=500, content=error.model_dump(mode="json"))

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m gateway.app.main
    However, using uvicorn command is recommended for production.
    """
    settings = get_settings()

    uvicorn.run(
        "gateway.app.main:app",
        host=settings.GATEWAY_HOST,
        port=settings.GATEWAY_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
