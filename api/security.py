"""
API access control.

- Static token guard for /api routes (header x-api-token or Bearer)
- Send-surface admission (global rate limiter), run before the body is parsed
- Dashboard login check

No configured token means open access.
"""

import hmac
import logging
from typing import Any, Callable, Coroutine

from fastapi import Request, Response
from fastapi.routing import APIRoute

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Error rendered as {"error": message} with the given status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def get_context(request: Request):
    """Service context attached to the application at startup."""
    return request.app.state.context


def extract_token(request: Request) -> str:
    """Token from x-api-token, falling back to Authorization: Bearer."""
    token = request.headers.get("x-api-token")
    if token:
        return token
    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[len("bearer "):].strip()
    return ""


def _matches(candidate: str, expected: str) -> bool:
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


async def require_token(request: Request) -> None:
    """Reject requests without the configured API token."""
    expected = get_context(request).api_token
    if not expected:
        return

    token = extract_token(request)
    if token and _matches(token, expected):
        return

    logger.warning(
        f"Rejected unauthenticated request: {request.method} {request.url.path}",
        extra={"path": request.url.path},
    )
    raise ApiError(401, "Invalid or missing token.")


async def enforce_rate_limit(request: Request) -> None:
    """Global admission control for the send surface."""
    if not get_context(request).rate_limiter.try_acquire():
        raise ApiError(429, "Too many requests, try again shortly.")


def check_login(context, user: str, password: str) -> bool:
    """Dashboard credentials check."""
    if not user or not password:
        return False
    return _matches(user, context.dash_user) and _matches(password, context.dash_pass)


class AdmissionRoute(APIRoute):
    """
    Route class for the send surface.

    Token guard and rate limit run before FastAPI parses the body, so an
    over-limit request is refused with 429 whatever its payload.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()

        async def admitted_handler(request: Request) -> Response:
            await require_token(request)
            await enforce_rate_limit(request)
            return await handler(request)

        return admitted_handler
