"""
Post-login redirect resolution.

After a successful callback the browser is sent to the front end that
belongs to the same deployment as the gateway host it came through, so a
login started against the local gateway lands on the local SPA and one
started against the hosted backend lands on the production site.
"""

import logging
from typing import Optional

from fastapi.responses import RedirectResponse

from ..models import Principal
from ..origins import OriginRegistry

logger = logging.getLogger(__name__)


class PostLoginRedirectResolver:
    """
    Computes the post-login target as ``resolved origin + post_login_path``.

    The origin always comes from the OriginRegistry, so the target is
    always inside the trusted set.
    """

    def __init__(self, registry: OriginRegistry, post_login_path: str = "/home"):
        self._registry = registry
        self._post_login_path = post_login_path

    @property
    def post_login_path(self) -> str:
        return self._post_login_path

    def on_authentication_success(self, request_host: Optional[str], principal: Principal) -> str:
        """
        Resolve the redirect target for a freshly authenticated principal.

        Args:
            request_host: Host header of the callback request
            principal: The principal just established

        Returns:
            Absolute URL on a trusted front-end origin
        """
        origin = self._registry.resolve_frontend_origin(request_host)
        target = f"{origin}{self._post_login_path}"
        logger.info(
            "Login succeeded, redirecting to front end",
            extra={"host": request_host, "target": target, "subject": principal.subject},
        )
        return target

    def redirect(self, request_host: Optional[str], principal: Principal) -> RedirectResponse:
        return RedirectResponse(
            url=self.on_authentication_success(request_host, principal),
            status_code=302,
        )
