"""
api/routes/v1/users.py -- Account, session, and password-reset REST endpoints.

Routes:
  POST /api/v1/users/register                      -- create account; 201
  POST /api/v1/users/login                         -- password login; sets both cookies
  POST /api/v1/users/logout                        -- clears refresh digest and cookies (requires auth)
  POST /api/v1/users/refresh                       -- rotate refresh token; sets both cookies
  GET  /api/v1/users/me                            -- current user (requires auth)
  POST /api/v1/users/update/password               -- change password (requires auth)
  POST /api/v1/users/update/profile                -- partial profile update (requires auth)
  POST /api/v1/users/forgot-password               -- email a reset link (rate limited)
  POST /api/v1/users/reset-password/{reset_token}  -- consume reset token

Security:
  Refresh token source order: refresh_token cookie, then body.refresh_token,
      then Authorization: Bearer.
  Cache-Control: no-store on every response that carries tokens.
  forgot-password never returns the reset token; it only travels by email.

Every auth service returns an Outcome. _raise_for() is the single place that
maps ErrorKind to an HTTP status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UpdateProfileRequest,
    UserEnvelope,
    UserResponse,
)
from auth.accounts import AccountService
from auth.dependencies import get_current_identity
from auth.models import ErrorKind, Identity, Outcome
from auth.reset import PasswordResetFlow
from auth.sessions import SessionLifecycle
from auth.tokens import (
    REFRESH_COOKIE,
    CredentialKind,
    CredentialSigner,
    clear_session_cookies,
    set_session_cookies,
)
from core.config import get_settings

# Auth policy:
# - POST /register, /login, /refresh, /forgot-password, /reset-password/{t}: public
# - POST /logout, /update/password, /update/profile, GET /me: requires auth (get_current_identity)
router = APIRouter()

_settings = get_settings()

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.INVALID_OR_EXPIRED: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


def _raise_for(outcome: Outcome) -> None:
    """Turn a failed Outcome into the matching HTTPException."""
    if outcome.ok:
        return
    failure = outcome.failure
    raise HTTPException(
        status_code=_STATUS_BY_KIND[failure.kind],
        detail={"code": failure.kind.value, "message": failure.message},
    )


def _token_response(content: dict) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/users/register", response_model=UserEnvelope, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserEnvelope:
    accounts: AccountService = request.app.state.accounts
    outcome = accounts.register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        username=body.username,
        password=body.password,
    )
    _raise_for(outcome)
    return UserEnvelope(user=UserResponse.from_user(outcome.value), message="User registered successfully.")


@router.post("/users/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email-or-username and password; set both cookies.

    The tokens are also returned in the body for clients that do not keep
    cookies.
    """
    sessions: SessionLifecycle = request.app.state.sessions
    signer: CredentialSigner = request.app.state.signer
    outcome = sessions.login(body.username_or_email, body.password)
    _raise_for(outcome)

    result = outcome.value
    resp = _token_response(
        LoginResponse(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=signer.ttl(CredentialKind.ACCESS),
            user=UserResponse.from_user(result.user),
        ).model_dump(),
    )
    set_session_cookies(resp, result.tokens, signer, secure=_settings.secure_cookies)
    return resp


@router.post("/users/refresh", response_model=TokenResponse)
def refresh(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange the current refresh token for a new pair.

    Accepts the token from the refresh_token cookie, the JSON body, or an
    Authorization: Bearer header, in that order.
    """
    sessions: SessionLifecycle = request.app.state.sessions
    signer: CredentialSigner = request.app.state.signer

    presented = request.cookies.get(REFRESH_COOKIE)
    if not presented and body is not None:
        presented = body.refresh_token
    if not presented:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            presented = auth_header[7:].strip()

    outcome = sessions.refresh(presented)
    _raise_for(outcome)

    tokens = outcome.value
    resp = _token_response(
        TokenResponse(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=signer.ttl(CredentialKind.ACCESS),
        ).model_dump(),
    )
    set_session_cookies(resp, tokens, signer, secure=_settings.secure_cookies)
    return resp


@router.post("/users/forgot-password", response_model=MessageResponse)
@limiter.limit(_settings.reset_request_rate_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> MessageResponse:
    """Email a one-time reset link. The token itself is never in the response."""
    reset_flow: PasswordResetFlow = request.app.state.reset_flow
    _raise_for(reset_flow.request_reset(body.email))
    return MessageResponse(message="Password reset request sent successfully.")


@router.post("/users/reset-password/{reset_token}", response_model=MessageResponse)
def reset_password(request: Request, reset_token: str, body: ResetPasswordRequest) -> MessageResponse:
    reset_flow: PasswordResetFlow = request.app.state.reset_flow
    _raise_for(reset_flow.confirm_reset(reset_token, body.new_password, body.confirm_password))
    return MessageResponse(message="Password reset successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/users/logout", response_model=MessageResponse)
def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> JSONResponse:
    """Clear the stored refresh digest and both cookies.

    The access token presented here remains valid until it expires.
    """
    sessions: SessionLifecycle = request.app.state.sessions
    _raise_for(sessions.logout(identity.id))
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully.").model_dump())
    clear_session_cookies(resp, secure=_settings.secure_cookies)
    return resp


@router.get("/users/me", response_model=UserEnvelope)
def me(request: Request, identity: Identity = Depends(get_current_identity)) -> UserEnvelope:
    accounts: AccountService = request.app.state.accounts
    outcome = accounts.get_profile(identity.id)
    _raise_for(outcome)
    return UserEnvelope(user=UserResponse.from_user(outcome.value), message="User found successfully.")


@router.post("/users/update/password", response_model=UserEnvelope)
def update_password(
    request: Request,
    body: ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
) -> UserEnvelope:
    accounts: AccountService = request.app.state.accounts
    outcome = accounts.change_password(identity.id, body.password, body.new_password, body.confirm_new_password)
    _raise_for(outcome)
    return UserEnvelope(user=UserResponse.from_user(outcome.value), message="Password updated successfully.")


@router.post("/users/update/profile", response_model=UserEnvelope)
def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    identity: Identity = Depends(get_current_identity),
) -> UserEnvelope:
    """Partially update the caller's profile.

    A username change shows up in access tokens from the next refresh or login.
    """
    accounts: AccountService = request.app.state.accounts
    outcome = accounts.update_profile(
        identity.id,
        first_name=body.first_name,
        last_name=body.last_name,
        username=body.username,
        tagline=body.tagline,
        bio=body.bio,
        portfolio_url=body.portfolio_url,
    )
    _raise_for(outcome)
    return UserEnvelope(user=UserResponse.from_user(outcome.value), message="Profile updated successfully.")
