"""
Data Models Module

This module defines Pydantic models for the authenticated principal and
for the JSON bodies returned by the gateway's own endpoints.

Models are organized by functional area:
- Authentication models (principal, user info)
- Diagnostics models (configuration check, health, info)
- Error models
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Authentication Models
# ============================================================================

class Principal(BaseModel):
    """Identity issued by the identity provider for the current session."""
    subject: str = Field(..., description="Provider subject identifier")
    name: Optional[str] = Field(None, description="User display name")
    email: Optional[str] = Field(None, description="User email address")
    picture: Optional[str] = Field(None, description="Profile picture URL")

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Principal":
        """
        Build a principal from ID token or userinfo claims.

        Raises:
            ValueError: If the claims carry no subject
        """
        subject = claims.get("sub")
        if not subject:
            raise ValueError("Claims missing required 'sub'")
        return cls(
            subject=str(subject),
            name=claims.get("name") or claims.get("given_name"),
            email=claims.get("email"),
            picture=claims.get("picture"),
        )


class UserInfoResponse(BaseModel):
    """Response model for /api/user."""
    authenticated: bool = Field(..., description="Whether a principal is present")
    name: Optional[str] = Field(None, description="User display name")
    email: Optional[str] = Field(None, description="User email address")
    picture: Optional[str] = Field(None, description="Profile picture URL")

    @classmethod
    def from_principal(cls, principal: Optional[Principal]) -> "UserInfoResponse":
        if principal is None:
            return cls(authenticated=False)
        return cls(
            authenticated=True,
            name=principal.name,
            email=principal.email,
            picture=principal.picture,
        )


# ============================================================================
# Diagnostics Models
# ============================================================================

class ConfigCheckResponse(BaseModel):
    """Response model for /api/config/check."""
    frontendUrl: Optional[str] = Field(None, description="Configured front-end URL")
    frontendUrlIsSet: bool = Field(..., description="Whether FRONTEND_URL is configured")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    components: Optional[Dict[str, str]] = Field(None, description="Component health status")


class InfoResponse(BaseModel):
    """Build information for /actuator/info."""
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    description: Optional[str] = Field(None, description="Service description")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")
