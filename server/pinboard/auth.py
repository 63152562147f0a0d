# ─────────────────────────────────────────────────────────────────────────────
# Authentication — service API key gate + signed-in user identity
# ─────────────────────────────────────────────────────────────────────────────
# Two separate concerns:
#   - APIKeyMiddleware: optional shared-secret gate for the whole service
#     (X-API-Key), disabled when API_KEY is empty. Health probes are exempt.
#   - User identity: sessions live in the upstream auth proxy, which forwards
#     the signed-in user as X-User-Id / X-User-Name / X-User-Service.
#     get_user_profile() maps those headers to a UserProfile.
# ─────────────────────────────────────────────────────────────────────────────


import secrets
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pinboard.exceptions import AuthenticationRequiredError
from pinboard.schemas import UserProfile

logger = structlog.get_logger(__name__)

# Liveness/readiness probes run without credentials.
_EXEMPT_PATHS: frozenset[str] = frozenset({"/health", "/health/ready"})

USER_ID_HEADER = "x-user-id"
USER_NAME_HEADER = "x-user-name"
USER_SERVICE_HEADER = "x-user-service"


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Reject requests that lack a valid ``X-API-Key`` header.

    Uses ``secrets.compare_digest`` so comparison time does not depend on
    how much of the key matched.
    """

    def __init__(self, app: Any, *, api_key: str) -> None:
        super().__init__(app)
        self._api_key = api_key

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        provided_key = request.headers.get("x-api-key", "")
        if not provided_key or not secrets.compare_digest(provided_key, self._api_key):
            logger.warning(
                "auth_rejected",
                path=request.url.path,
                method=request.method,
                reason="invalid_or_missing_api_key",
            )
            return JSONResponse(
                status_code=401,
                content={"error": "Invalid or missing API key", "type": "APIKeyRejected"},
            )

        return await call_next(request)


def get_user_profile(request: Request) -> UserProfile | None:
    """The signed-in user, or None for anonymous requests."""
    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    if not user_id:
        return None
    return UserProfile(
        user_id=user_id,
        display_name=request.headers.get(USER_NAME_HEADER, "").strip(),
        service=request.headers.get(USER_SERVICE_HEADER, "").strip(),
    )


def require_user(request: Request) -> UserProfile:
    """Depends() provider for routes that need a signed-in user."""
    profile = get_user_profile(request)
    if profile is None:
        raise AuthenticationRequiredError()
    return profile
