"""
Authentication dependencies for dashboard routes.

User identity comes from outside this service. With require_auth enabled
the session token (cookie or Bearer header) is handed to the resolver
installed on app.state.identity_resolver, which returns
{"user_id": ..., "role": ...} or None. With require_auth disabled the
X-User-Id and X-User-Role headers are trusted, for local development.
"""

import logging
from collections.abc import Callable

from fastapi import Depends, Request

from farmpass.dashboard.backend.config import security_config
from farmpass.push.errors import ErrorCode, PushError


logger = logging.getLogger(__name__)

IdentityResolver = Callable[[str], dict | None]


def _session_token(request: Request) -> str | None:
    cookie_name = security_config.get("session_cookie_name", "farmpass_session")
    token = request.cookies.get(cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


async def get_current_user(request: Request) -> dict:
    """Resolve the calling user or fail with AUTH_REQUIRED."""
    if not security_config.get("require_auth", True):
        return {
            "user_id": request.headers.get("X-User-Id", "anonymous"),
            "role": request.headers.get("X-User-Role", "user"),
        }

    token = _session_token(request)
    if not token:
        raise PushError(ErrorCode.AUTH_REQUIRED, "Authentication required", status_code=401)

    resolver: IdentityResolver | None = getattr(request.app.state, "identity_resolver", None)
    if resolver is None:
        logger.warning("No identity resolver configured, rejecting authenticated request")
        raise PushError(ErrorCode.AUTH_REQUIRED, "Authentication required", status_code=401)

    user = resolver(token)
    if not user or not user.get("user_id"):
        raise PushError(ErrorCode.AUTH_REQUIRED, "Session invalid or expired", status_code=401)

    return {"user_id": user["user_id"], "role": user.get("role", "user")}


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require admin or owner role."""
    admin_roles = security_config.get("admin_roles", ["admin", "owner"])
    if user.get("role") not in admin_roles:
        raise PushError(ErrorCode.ADMIN_REQUIRED, "Admin access required", status_code=403)
    return user
