"""
Authentication Endpoints.

This module exposes the third-party sign-in flow and session management.

Endpoints Provided:
- `/auth/sign-in`: Redirects the browser to the identity provider's consent page.
- `/auth/callback`: Receives the provider's redirect, opens a session, sets the
  session cookies and sends the user back to where they started.
- `/auth/session`: Reports the current user, or `null` when signed out.
- `/auth/refresh`: Trades a refresh token for a new access token.
- `/auth/sign-out`: Ends the current session and clears the cookies.

Architectural Design:
- Quiet Failures: provider or state errors during sign-in and sign-out are
  logged and the user lands back on `/` signed out. There is no user-visible
  error page for authentication failures.
- Local Redirects Only: the post-sign-in target must be a path on this site.
- Cookie or Bearer: the session middleware accepts either, so browsers use the
  HttpOnly cookies and API clients use the `Authorization` header.
"""

import os
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from core.auth import AuthSession, AuthenticationService
from core.exceptions import AuthenticationError, IdentityProviderError
from core.logging_config import get_logger, log_function_call
from core.security_middleware import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE
from core.validation import validate_redirect_path
from providers.identity_provider import IdentityProvider
from .dependencies import (
    get_authentication_service,
    get_current_session,
    get_identity_provider,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])

CALLBACK_PATH = "/auth/callback"


# Request/Response Models
class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int


def callback_url(request: Request) -> str:
    """Absolute callback URL registered with the provider"""
    base_url = os.getenv("PUBLIC_BASE_URL") or str(request.base_url)
    return base_url.rstrip("/") + CALLBACK_PATH


def _cookie_secure(request: Request) -> bool:
    return request.url.scheme == "https"


def set_session_cookies(response, session: AuthSession, request: Request):
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        session.access_token,
        max_age=session.expires_in,
        httponly=True,
        samesite="lax",
        secure=_cookie_secure(request),
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        session.refresh_token,
        httponly=True,
        samesite="lax",
        secure=_cookie_secure(request),
        path="/auth",
    )


def clear_session_cookies(response):
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path="/auth")


@router.get("/sign-in")
@log_function_call(logger)
async def sign_in(
    request: Request,
    next_path: str = Query("/", alias="next"),
    client_id: Optional[str] = Query(None),
    auth_service: AuthenticationService = Depends(get_authentication_service),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Redirect to the identity provider"""
    redirect_to = validate_redirect_path(next_path)
    pending = auth_service.begin_sign_in(redirect_to=redirect_to, client_id=client_id)
    url = provider.authorization_url(callback_url(request), pending.state)

    logger.info(f"Redirecting to {provider.name} sign-in")
    return RedirectResponse(url, status_code=307)


@router.get("/callback")
@log_function_call(logger)
async def sign_in_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    auth_service: AuthenticationService = Depends(get_authentication_service),
    provider: IdentityProvider = Depends(get_identity_provider),
):
    """Complete the sign-in started by `/auth/sign-in`"""
    if error or not code:
        logger.warning(f"Sign-in callback without a code (error={error})")
        return RedirectResponse("/", status_code=303)

    try:
        pending = auth_service.consume_sign_in(state)
        profile = await provider.exchange_code(code, callback_url(request))
        session = auth_service.complete_sign_in(pending, profile)
    except (AuthenticationError, IdentityProviderError) as e:
        logger.warning(f"Sign-in failed: {e}")
        return RedirectResponse("/", status_code=303)

    response = RedirectResponse(pending.redirect_to, status_code=303)
    set_session_cookies(response, session, request)
    return response


@router.get("/session")
async def current_session(
    session: Optional[AuthSession] = Depends(get_current_session),
):
    """Current user, or null when nobody is signed in"""
    if session is None:
        return {"user": None, "signed_in": False}
    return {
        "user": session.user.to_dict(),
        "signed_in": True,
        "expires_in": session.expires_in,
    }


@router.post("/refresh", response_model=TokenResponse)
@log_function_call(logger)
async def refresh_access_token(
    request: Request,
    body: Optional[RefreshTokenRequest] = None,
    auth_service: AuthenticationService = Depends(get_authentication_service),
):
    """Refresh the access token using a refresh token"""
    refresh_token = (body.refresh_token if body else None) or request.cookies.get(
        REFRESH_TOKEN_COOKIE
    )
    if not refresh_token:
        raise AuthenticationError("Refresh token required")

    session = auth_service.refresh_session(refresh_token)

    response = JSONResponse(
        TokenResponse(
            access_token=session.access_token,
            token_type="bearer",
            expires_in=session.expires_in,
        ).model_dump()
    )
    set_session_cookies(response, session, request)
    return response


@router.post("/sign-out")
@log_function_call(logger)
async def sign_out(
    request: Request,
    auth_service: AuthenticationService = Depends(get_authentication_service),
):
    """End the current session; succeeds even when nobody is signed in"""
    token = getattr(request.state, "access_token", None)
    ended = auth_service.sign_out(token, request.cookies.get(REFRESH_TOKEN_COOKIE))

    response = JSONResponse({"message": "Signed out", "session_ended": ended})
    clear_session_cookies(response)
    return response
