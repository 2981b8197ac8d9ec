"""Signup, login, logout, wallet verification and password changes."""

from fastapi import APIRouter, Request, Response

from ..config import settings
from ..middleware import (
    CurrentUser,
    ServicesDep,
    clear_session_cookie,
    get_session_token,
    limiter,
    set_session_cookie,
)
from ..models import ChangePasswordRequest, LoginRequest, SignupRequest, WalletVerifyRequest
from .envelope import ok

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup")
@limiter.limit(settings.rate_limit)
async def signup(request: Request, response: Response, body: SignupRequest, services: ServicesDep):
    """Create an account and log it in."""
    user, token = await services.auth.signup(body)
    set_session_cookie(response, token)
    return ok({"user": user, "token": token})


@router.post("/login")
@limiter.limit(settings.rate_limit)
async def login(request: Request, response: Response, body: LoginRequest, services: ServicesDep):
    """Exchange username and password for a session."""
    user, token = await services.auth.login(body.username, body.password)
    set_session_cookie(response, token)
    return ok({"user": user, "token": token})


@router.post("/logout")
async def logout(request: Request, response: Response, services: ServicesDep):
    """Revoke the presented session, if any, and clear the cookie."""
    token = get_session_token(request)
    if token:
        await services.auth.logout(token)
    clear_session_cookie(response)
    return ok()


@router.get("/me")
async def me(user: CurrentUser, services: ServicesDep):
    return ok({"user": await services.auth.get_user(user["id"])})


@router.post("/wallet/verify")
async def verify_wallet(body: WalletVerifyRequest, user: CurrentUser, services: ServicesDep):
    """Prove control of the wallet stored on the account."""
    await services.auth.verify_wallet(user, body.signed_message, body.signature)
    return ok({"verified": True})


@router.post("/change-password")
async def change_password(
    request: Request, body: ChangePasswordRequest, user: CurrentUser, services: ServicesDep
):
    """Change the password. Every session except the current one is revoked."""
    revoked = await services.auth.change_password(
        user,
        body.current_password,
        body.new_password,
        keep_token=getattr(request.state, "session_token", None),
    )
    return ok({"message": "Password changed", "sessions_revoked": revoked})
