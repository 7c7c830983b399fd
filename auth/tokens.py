"""
auth/tokens.py -- Credential signing, digests, password hashing, cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two independent namespaces:
       access  -- {id, username, email}, ACCESS_TOKEN_SECRET, 1 day
       refresh -- {id},                  REFRESH_TOKEN_SECRET, 7 days
       Every token also carries a typ claim naming its namespace. A token is
       rejected by the other namespace twice over: the secret differs and the
       typ claim does not match. Refresh tokens carry a random jti so two
       tokens minted for the same user within one second still differ, which
       the single-live-token digest check depends on.

  Secrets are injected into CredentialSigner at construction (from Settings in
       api/main.py lifespan). Nothing in this module reads configuration at
       import time.

  Clock: CredentialSigner takes an optional clock used for both issuance
       (iat/exp) and the expiry check in verify(); jose's own exp check is
       disabled so the two never disagree.

  Digests: SHA-256 hex of the raw token. Refresh and reset tokens carry at
       least 160 bits of entropy, so a fast hash is sufficient. Only the digest
       is ever persisted.

  Passwords: bcrypt directly (no passlib wrapper). bcrypt rejects input longer
       than 72 bytes; callers validate length first via password_too_long().

Layer rule: no imports from api/, core/, or notify/.
"""

from __future__ import annotations

import hashlib
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt

from auth.models import TokenPair

if TYPE_CHECKING:
    from auth.models import User

_ALGORITHM = "HS256"

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"

DEFAULT_ACCESS_TTL = 60 * 60 * 24
DEFAULT_REFRESH_TTL = 60 * 60 * 24 * 7

# Claims added by the signer itself. Caller claims may not use these names,
# and verify() strips them so callers get back exactly what they signed.
_RESERVED_CLAIMS = frozenset({"exp", "iat", "typ", "jti"})

_BCRYPT_MAX_BYTES = 72


class CredentialKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class CredentialError(Exception):
    """Base class for credential verification failures."""


class ExpiredCredential(CredentialError):
    """The credential's embedded expiry is in the past."""


class InvalidCredential(CredentialError):
    """Bad signature, malformed token, or wrong namespace."""


# ---------------------------------------------------------------------------
# Sign / verify primitives
# ---------------------------------------------------------------------------


def sign_credential(
    kind: CredentialKind,
    claims: dict[str, Any],
    secret: str,
    ttl: int,
    now: datetime | None = None,
) -> str:
    """Encode claims as an HS256 JWT in the given namespace.

    ttl is in seconds from now. Raises ValueError if claims use a reserved name.
    """
    clash = _RESERVED_CLAIMS.intersection(claims)
    if clash:
        raise ValueError(f"Reserved claim names cannot be signed: {sorted(clash)!r}")
    issued = now or datetime.now(timezone.utc)
    payload = dict(claims)
    payload.update(
        typ=kind.value,
        iat=issued,
        exp=issued + timedelta(seconds=ttl),
        jti=secrets.token_hex(16),
    )
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_credential(
    kind: CredentialKind,
    token: str,
    secret: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Decode and verify a JWT for the given namespace and return its claims.

    Expiry is checked against now (default: current UTC time) rather than
    jose's wall clock, so a signer with an injected clock agrees with itself.
    Raises ExpiredCredential when exp has passed, InvalidCredential for every
    other failure (signature, format, missing exp, typ mismatch).
    """
    if not token or not isinstance(token, str):
        raise InvalidCredential("Credential is missing.")
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM], options={"verify_exp": False})
    except JWTError as exc:
        raise InvalidCredential("Credential is invalid.") from exc
    exp = payload.get("exp")
    if not isinstance(exp, (int, float)):
        raise InvalidCredential("Credential has no expiry.")
    current = now or datetime.now(timezone.utc)
    if exp < current.timestamp():
        raise ExpiredCredential("Credential has expired.")
    if payload.get("typ") != kind.value:
        raise InvalidCredential("Credential namespace mismatch.")
    return {k: v for k, v in payload.items() if k not in _RESERVED_CLAIMS}


class CredentialSigner:
    """Signs and verifies access and refresh credentials with per-kind secrets.

    Usage:
        signer = CredentialSigner(access_secret, refresh_secret)
        pair = signer.issue_pair(user)
        claims = signer.verify(CredentialKind.REFRESH, pair.refresh_token)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: int = DEFAULT_ACCESS_TTL,
        refresh_ttl: int = DEFAULT_REFRESH_TTL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh secrets must differ.")
        self._secrets = {CredentialKind.ACCESS: access_secret, CredentialKind.REFRESH: refresh_secret}
        self._ttls = {CredentialKind.ACCESS: access_ttl, CredentialKind.REFRESH: refresh_ttl}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings) -> CredentialSigner:
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=settings.access_token_expire_seconds,
            refresh_ttl=settings.refresh_token_expire_seconds,
        )

    def ttl(self, kind: CredentialKind) -> int:
        return self._ttls[kind]

    def sign(self, kind: CredentialKind, claims: dict[str, Any], ttl: int | None = None) -> str:
        return sign_credential(
            kind,
            claims,
            self._secrets[kind],
            self._ttls[kind] if ttl is None else ttl,
            now=self._clock(),
        )

    def verify(self, kind: CredentialKind, token: str) -> dict[str, Any]:
        return verify_credential(kind, token, self._secrets[kind], now=self._clock())

    def issue_pair(self, user: User) -> TokenPair:
        """Sign a fresh access/refresh pair for the user."""
        access = self.sign(
            CredentialKind.ACCESS,
            {"id": user.id, "username": user.username, "email": user.email},
        )
        refresh = self.sign(CredentialKind.REFRESH, {"id": user.id})
        return TokenPair(access_token=access, refresh_token=refresh)


# ---------------------------------------------------------------------------
# Digests and one-time tokens
# ---------------------------------------------------------------------------


def hash_token(raw: str) -> str:
    """Return the SHA-256 hex digest of a raw token."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def generate_reset_token() -> str:
    """Return a 160-bit random hex token for password reset links."""
    return secrets.token_hex(20)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > _BCRYPT_MAX_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookies(response, tokens: TokenPair, signer: CredentialSigner, secure: bool = False) -> None:
    """Write both credentials as httpOnly cookies on the response.

    httponly=True: JS cannot read the cookies (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    max_age: matches each credential's TTL so cookie and token expire together.
    """
    response.set_cookie(
        ACCESS_COOKIE,
        value=tokens.access_token,
        httponly=True,
        samesite="lax",
        secure=secure,
        path="/",
        max_age=signer.ttl(CredentialKind.ACCESS),
    )
    response.set_cookie(
        REFRESH_COOKIE,
        value=tokens.refresh_token,
        httponly=True,
        samesite="lax",
        secure=secure,
        path="/",
        max_age=signer.ttl(CredentialKind.REFRESH),
    )


def clear_session_cookies(response, secure: bool = False) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/", secure=secure, httponly=True, samesite="lax")
