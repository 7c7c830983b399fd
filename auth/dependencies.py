"""
auth/dependencies.py -- Access-token gate and FastAPI Depends() helpers.

AuthGate is the framework-free part: token in, Outcome[Identity] out.
get_current_identity() adapts it to FastAPI:

  1. access_token cookie -- set by login/refresh (httpOnly, samesite=lax).
  2. Authorization: Bearer <token> header -- for clients that keep the token
     from the response body instead of cookies.

On any failure the dependency raises HTTP 401 before the route body runs. On
success the decoded claims are attached to request.state.identity.

The gate is stateless. It cannot tell a logged-out session from a live one, so
an access token stays usable until it expires, even after logout.

Layer rule: may import from fastapi (Request/HTTPException) because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import ErrorKind, Identity, Outcome
from auth.tokens import ACCESS_COOKIE, CredentialError, CredentialKind, CredentialSigner


class AuthGate:
    def __init__(self, signer: CredentialSigner) -> None:
        self._signer = signer

    def authenticate(self, token: str | None) -> Outcome[Identity]:
        if not token:
            return Outcome.fail(ErrorKind.UNAUTHORIZED, "Authentication required. Please log in.")
        try:
            claims = self._signer.verify(CredentialKind.ACCESS, token)
            identity = Identity(id=claims["id"], username=claims["username"], email=claims["email"])
        except (CredentialError, KeyError):
            return Outcome.fail(ErrorKind.UNAUTHORIZED, "Authentication required. Please log in.")
        return Outcome.success(identity)


def extract_access_token(request: Request) -> str | None:
    """Return the access token from the cookie, falling back to a Bearer header."""
    token = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_identity(request: Request) -> Identity:
    """Require a valid access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    gate: AuthGate = request.app.state.auth_gate
    outcome = gate.authenticate(extract_access_token(request))
    if not outcome.ok:
        raise HTTPException(
            status_code=401,
            detail={"code": outcome.failure.kind.value, "message": outcome.failure.message},
        )
    request.state.identity = outcome.value
    return outcome.value
