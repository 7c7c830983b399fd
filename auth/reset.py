"""
auth/reset.py -- Forgot-password handshake.

  request_reset(email)  -> stores sha256(token) + absolute expiry, emails the
                           raw token to the account owner.
  confirm_reset(token, new, confirm) -> finds the user by digest while the
                           expiry is still in the future, sets the new
                           password, clears both reset fields, emails a
                           confirmation.

The raw token exists only in the email and in the caller's hands. It is never
persisted or logged. Consumption is a conditional update on the digest, so a
token works at most once even under concurrent use. Expired tokens are never
purged; they simply stop matching.

This flow is independent of the session tokens: a successful reset does not
log out existing sessions.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from auth.models import ErrorKind, Outcome
from auth.store import UserStore
from auth.tokens import generate_reset_token, hash_password, hash_token, password_too_long

if TYPE_CHECKING:
    from notify.mailer import Mailer

logger = logging.getLogger("pulse.auth.reset")

DEFAULT_RESET_WINDOW = 60 * 20

_INVALID_OR_EXPIRED = "Invalid or expired reset token."


class PasswordResetFlow:
    def __init__(
        self,
        store: UserStore,
        mailer: Mailer,
        window_seconds: int = DEFAULT_RESET_WINDOW,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._mailer = mailer
        self._window = timedelta(seconds=window_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def request_reset(self, email: str) -> Outcome[str]:
        """Issue a reset token for the account and email it.

        Returns the unhashed token on success so non-HTTP callers (the CLI,
        tests) can hand it on; the HTTP route never echoes it.
        """
        if not email:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Email is required.")
        try:
            user = self._store.get_by_email(email.strip())
            if user is None:
                return Outcome.fail(ErrorKind.NOT_FOUND, "User not found. Please provide a valid email address.")

            token = generate_reset_token()
            expiry = (self._clock() + self._window).timestamp()
            self._store.set_reset_token(user.id, hash_token(token), expiry)
        except SQLAlchemyError:
            logger.exception("Password reset request failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to request password reset.")

        if not self._mailer.send_reset_password_email(user.username, user.email, token):
            logger.error("Password reset email for user_id=%s could not be delivered", user.id)
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to send password reset email.")

        logger.info("Password reset requested for user_id=%s", user.id)
        return Outcome.success(token)

    def confirm_reset(self, presented: str, new_password: str, confirm_password: str) -> Outcome[None]:
        if not presented or not new_password or not confirm_password:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "All fields are required.")
        if new_password != confirm_password:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Passwords do not match.")
        if password_too_long(new_password):
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Password must be at most 72 bytes.")

        token_hash = hash_token(presented)
        try:
            user = self._store.get_by_reset_token(token_hash, self._clock().timestamp())
            if user is None:
                return Outcome.fail(ErrorKind.INVALID_OR_EXPIRED, _INVALID_OR_EXPIRED)
            if not self._store.consume_reset_token(user.id, token_hash, hash_password(new_password)):
                # Another request spent the token between lookup and update.
                return Outcome.fail(ErrorKind.INVALID_OR_EXPIRED, _INVALID_OR_EXPIRED)
        except SQLAlchemyError:
            logger.exception("Password reset failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to reset password.")

        logger.info("Password reset completed for user_id=%s", user.id)
        if not self._mailer.send_reset_password_success_email(user.username, user.email):
            logger.warning("Reset confirmation email for user_id=%s could not be delivered", user.id)
        return Outcome.success()
