"""
auth/models.py -- Domain dataclasses and result types for authentication.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these types only carry shape.

Outcome is the boundary type for every public auth operation: callers get
either a value or an AuthFailure, never an exception. The HTTP layer maps
ErrorKind to a status code in one place (api/routes/v1/users.py).

Layer rule: no imports from api/, core/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class User:
    """A registered account.

    email and username are stored lowercased. hashed_password is a bcrypt
    hash. refresh_token_hash holds the SHA-256 digest of the single live
    renewal credential (None when logged out). reset_token_hash and
    reset_token_expiry (epoch seconds) describe a pending password reset.
    """

    email: str
    username: str
    first_name: str = ""
    last_name: str = ""
    tagline: str | None = None
    bio: str | None = None
    portfolio_url: str | None = None
    id: int | None = None
    hashed_password: str | None = None
    refresh_token_hash: str | None = None
    reset_token_hash: str | None = None
    reset_token_expiry: float | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class Identity:
    """Claims carried by a verified access credential."""

    id: int
    username: str
    email: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    tokens: TokenPair
    user: User


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_OR_EXPIRED = "invalid_or_expired"
    CONFLICT = "conflict"
    INTERNAL = "internal_error"


@dataclass(frozen=True)
class AuthFailure:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a public auth operation: exactly one of value or failure."""

    value: T | None = None
    failure: AuthFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T | None = None) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> Outcome[T]:
        return cls(failure=AuthFailure(kind=kind, message=message))
