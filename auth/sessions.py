"""
auth/sessions.py -- Login, logout, and refresh-token rotation.

Single-session model: each user has at most one live refresh token. Its SHA-256
digest sits in users.refresh_token_hash. Login overwrites it, refresh rotates
it, logout clears it. A refresh token that still verifies cryptographically but
whose digest is no longer stored (superseded or logged out) is rejected.

Rotation is a compare-and-swap on the stored digest (see
UserStore.swap_refresh_token_hash). When two refreshes race with the same
token, exactly one rotates; the other is rejected as unauthorized instead of
silently invalidating the winner's new token.

Known gap: logout does not revoke access tokens already issued. They stay
valid until their 1-day expiry because AuthGate keeps no server-side state.

All public methods return Outcome; storage and signing errors are logged here
and surface as ErrorKind.INTERNAL.
"""

from __future__ import annotations

import logging

from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError

from auth.models import ErrorKind, LoginResult, Outcome, TokenPair
from auth.store import UserStore
from auth.tokens import CredentialError, CredentialKind, CredentialSigner, hash_token, verify_password

logger = logging.getLogger("pulse.auth.sessions")

_INTERNAL_ERRORS = (SQLAlchemyError, JWTError)
_INTERNAL_MESSAGE = "An unexpected error occurred."
# One message for every refresh rejection so callers cannot tell a forged
# token from an expired or superseded one.
_REFRESH_REJECTED = "Invalid or expired refresh token. Please log in again."


class SessionLifecycle:
    def __init__(self, store: UserStore, signer: CredentialSigner) -> None:
        self._store = store
        self._signer = signer

    def login(self, username_or_email: str, password: str) -> Outcome[LoginResult]:
        """Verify a password login and issue a fresh token pair.

        Fails INVALID_INPUT on empty fields, NOT_FOUND when no account matches
        the email or username, UNAUTHORIZED on a wrong password.
        """
        try:
            return self._login(username_or_email, password)
        except _INTERNAL_ERRORS:
            logger.exception("Login failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, _INTERNAL_MESSAGE)

    def _login(self, username_or_email: str, password: str) -> Outcome[LoginResult]:
        if not username_or_email:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Email or username is required.")
        if not password:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Password is required.")

        user = self._store.find_by_email_or_username(username_or_email.strip())
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, "User not found.")
        if not verify_password(password, user.hashed_password):
            logger.info("Login rejected for user_id=%s: bad password", user.id)
            return Outcome.fail(ErrorKind.UNAUTHORIZED, "Invalid credentials.")

        tokens = self._signer.issue_pair(user)
        # Overwrite, not append: any earlier refresh token dies here.
        self._store.set_refresh_token_hash(user.id, hash_token(tokens.refresh_token))
        self._store.update_last_login(user.id)
        logger.info("Login succeeded for user_id=%s", user.id)
        return Outcome.success(LoginResult(tokens=tokens, user=user))

    def refresh(self, presented: str | None) -> Outcome[TokenPair]:
        """Exchange the current refresh token for a new pair, rotating the stored digest."""
        try:
            return self._refresh(presented)
        except _INTERNAL_ERRORS:
            logger.exception("Refresh failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, _INTERNAL_MESSAGE)

    def _refresh(self, presented: str | None) -> Outcome[TokenPair]:
        if not presented:
            return Outcome.fail(ErrorKind.UNAUTHORIZED, "Refresh token is required.")
        try:
            claims = self._signer.verify(CredentialKind.REFRESH, presented)
        except CredentialError as exc:
            logger.info("Refresh rejected: %s", exc)
            return Outcome.fail(ErrorKind.UNAUTHORIZED, _REFRESH_REJECTED)

        user = self._store.get_by_id(claims.get("id"))
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, "No user found for the provided refresh token.")

        presented_hash = hash_token(presented)
        if user.refresh_token_hash is None or user.refresh_token_hash != presented_hash:
            logger.warning("Refresh rejected for user_id=%s: token is not the current one", user.id)
            return Outcome.fail(ErrorKind.UNAUTHORIZED, _REFRESH_REJECTED)

        tokens = self._signer.issue_pair(user)
        if not self._store.swap_refresh_token_hash(user.id, presented_hash, hash_token(tokens.refresh_token)):
            logger.warning("Refresh rejected for user_id=%s: lost rotation race", user.id)
            return Outcome.fail(ErrorKind.UNAUTHORIZED, _REFRESH_REJECTED)

        logger.info("Refresh token rotated for user_id=%s", user.id)
        return Outcome.success(tokens)

    def logout(self, user_id: int) -> Outcome[None]:
        """Clear the stored refresh digest. Idempotent; NOT_FOUND only for a missing user."""
        try:
            if not self._store.unset_fields(user_id, "refresh_token_hash"):
                return Outcome.fail(ErrorKind.NOT_FOUND, "User not found.")
        except _INTERNAL_ERRORS:
            logger.exception("Logout failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, _INTERNAL_MESSAGE)
        logger.info("Logout for user_id=%s", user_id)
        return Outcome.success()
