"""
API Routes
==========

Endpoints:
----------
- GET /api/user: Current principal (name, email, picture)
- GET /api/config/check: Front-end URL diagnostics
- GET /robots933456.txt: Hosting platform warm-up probe
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ..auth.session import current_principal
from ..config import Settings
from ..models import ConfigCheckResponse, Principal, UserInfoResponse

logger = logging.getLogger(__name__)

api_router = APIRouter()

ROBOTS_PROBE_BODY = "User-agent: *\nDisallow:"


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was created with."""
    return request.app.state.settings


@api_router.get("/api/user", response_model=UserInfoResponse, tags=["user"])
async def get_user(principal: Optional[Principal] = Depends(current_principal)) -> UserInfoResponse:
    """
    Return the authenticated user's profile.

    The gate only lets authenticated requests through, but the response
    still reports ``authenticated: false`` rather than failing if no
    principal is present.
    """
    return UserInfoResponse.from_principal(principal)


@api_router.get("/api/config/check", response_model=ConfigCheckResponse, tags=["diagnostics"])
async def check_config(settings: Settings = Depends(get_app_settings)) -> ConfigCheckResponse:
    if not settings.frontend_url_is_set:
        logger.warning("FRONTEND_URL is not set")
    return ConfigCheckResponse(
        frontendUrl=settings.FRONTEND_URL,
        frontendUrlIsSet=settings.frontend_url_is_set,
    )


@api_router.get("/robots933456.txt", response_class=PlainTextResponse, include_in_schema=False)
async def robots_probe() -> str:
    return ROBOTS_PROBE_BODY
