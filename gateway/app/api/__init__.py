"""
API Package
===========

Read-only endpoints consumed by the SPA over credentialed CORS. Every path
here is protected by the authentication gate.

Usage:
------
    from gateway.app.api import api_router
    app.include_router(api_router)
"""

from .routes import api_router

__all__ = ["api_router"]
