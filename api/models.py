"""
API request and response models for Pulse REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Required-field checks (empty strings) are left to the auth services so the
error comes back as invalid_input (400) with the same message the CLI sees.
Pydantic only enforces type and length bounds here.

Whitespace: identifier, name, and email fields are trimmed (Trimmed). Password
fields are never trimmed; the verifier must see exactly what the user typed.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import User

# Loose shape check only; deliverability is proven by the reset email itself.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"

Trimmed = Annotated[str, StringConstraints(strip_whitespace=True)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/users/register."""

    first_name: Trimmed = Field(default="", max_length=100)
    last_name: Trimmed = Field(default="", max_length=100)
    email: Trimmed = Field(pattern=EMAIL_PATTERN, max_length=255)
    username: Trimmed = Field(min_length=1, max_length=255, pattern=USERNAME_PATTERN)
    password: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/users/login."""

    username_or_email: Trimmed = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)


class RefreshRequest(BaseModel):
    """Optional body for POST /api/v1/users/refresh (cookie is checked first)."""

    refresh_token: Optional[str] = Field(default=None, max_length=4096)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/forgot-password."""

    email: Trimmed = Field(default="", max_length=255)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/reset-password/{reset_token}."""

    new_password: str = Field(default="", max_length=255)
    confirm_password: str = Field(default="", max_length=255)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/update/password."""

    password: str = Field(default="", max_length=255)
    new_password: str = Field(default="", max_length=255)
    confirm_new_password: str = Field(default="", max_length=255)


class UpdateProfileRequest(BaseModel):
    """Request body for POST /api/v1/users/update/profile.

    Omitted (null) fields are left unchanged. An empty tagline, bio, or
    portfolio_url clears it; empty names are ignored.
    """

    first_name: Optional[Trimmed] = Field(default=None, max_length=100)
    last_name: Optional[Trimmed] = Field(default=None, max_length=100)
    username: Optional[Trimmed] = Field(default=None, min_length=1, max_length=255, pattern=USERNAME_PATTERN)
    tagline: Optional[Trimmed] = Field(default=None, max_length=160)
    bio: Optional[Trimmed] = Field(default=None, max_length=1000)
    portfolio_url: Optional[Trimmed] = Field(default=None, max_length=2048)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user record. Never includes hashes."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    username: str
    first_name: str
    last_name: str
    tagline: Optional[str] = None
    bio: Optional[str] = None
    portfolio_url: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            tagline=user.tagline,
            bio=user.bio,
            portfolio_url=user.portfolio_url,
        )


class TokenResponse(BaseModel):
    """Response for POST /refresh. Both tokens are also set as cookies."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginResponse(TokenResponse):
    """Response for POST /login."""

    user: UserResponse


class UserEnvelope(BaseModel):
    """Response wrapping a single user plus a human-readable message."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    message: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
