"""Request tracking middleware, session authentication and rate limiting."""

import hmac
import uuid
from typing import Annotated

from fastapi import Depends, Request, Response
from loguru import logger
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings
from .exceptions import AuthenticationError
from .factory import Services
from .types import UserRecord

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.redis_url or "memory://",
)


async def add_request_id(request: Request, call_next):
    """Add request ID to context for tracking.

    Args:
        request: Incoming FastAPI request.
        call_next: Next middleware or handler in chain.

    Returns:
        Response with X-Request-ID header.

    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id

    with logger.contextualize(request_id=request_id):
        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.debug(
            "Request completed",
            status_code=response.status_code,
        )

        return response


def get_services(request: Request) -> Services:
    """Get the services container built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


def _bearer(request: Request) -> str | None:
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        return authorization.removeprefix("Bearer ").strip() or None
    return None


def get_session_token(request: Request) -> str | None:
    """Session token from an ``Authorization: Bearer`` header, else from the cookie."""
    return _bearer(request) or request.cookies.get(settings.cookie_name)


async def get_current_user(request: Request) -> UserRecord:
    """Resolve the user behind the request's session.

    Raises:
        AuthenticationError: No token, or the token has no live session.
    """
    token = get_session_token(request)
    if not token:
        raise AuthenticationError("No session token found. Please log in again.")

    user = await get_services(request).auth.authenticate(token)
    if user is None:
        raise AuthenticationError("Session expired. Please log in again.")
    request.state.session_token = token
    return user


async def require_admin(request: Request) -> None:
    """Allow only requests bearing the configured admin token."""
    expected = get_services(request).settings.admin_token
    presented = _bearer(request)
    if not expected or not presented:
        raise AuthenticationError("Unauthorized")
    if not hmac.compare_digest(presented.encode(), expected.encode()):
        raise AuthenticationError("Unauthorized")


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="none",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.cookie_name, httponly=True, secure=settings.cookie_secure, samesite="none"
    )


ServicesDep = Annotated[Services, Depends(get_services)]
CurrentUser = Annotated[UserRecord, Depends(get_current_user)]
