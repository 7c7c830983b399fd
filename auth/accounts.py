"""
auth/accounts.py -- Account registration, profile lookup and update, password change.

These sit beside the session core: registration creates the user record the
session and reset flows operate on, change_password is the logged-in
counterpart of the reset handshake.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import ErrorKind, Outcome, User
from auth.store import UserStore
from auth.tokens import hash_password, password_too_long, verify_password

logger = logging.getLogger("pulse.auth.accounts")

_REQUIRED_FIELDS = ("first_name", "last_name", "email", "username", "password")


class AccountService:
    def __init__(self, store: UserStore) -> None:
        self._store = store

    def register(self, first_name: str, last_name: str, email: str, username: str, password: str) -> Outcome[User]:
        values = {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "username": username,
            "password": password,
        }
        for name in _REQUIRED_FIELDS:
            if not values[name]:
                return Outcome.fail(ErrorKind.INVALID_INPUT, f"{name} is required.")
        if password_too_long(password):
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Password must be at most 72 bytes.")

        try:
            if self._store.email_or_username_taken(email, username):
                return Outcome.fail(ErrorKind.CONFLICT, "User already exists.")
            user_id = self._store.create_user(
                User(
                    email=email.strip().lower(),
                    username=username.strip().lower(),
                    first_name=first_name,
                    last_name=last_name,
                    hashed_password=hash_password(password),
                )
            )
            created = self._store.get_by_id(user_id)
        except IntegrityError:
            # A concurrent registration claimed the email or username first.
            return Outcome.fail(ErrorKind.CONFLICT, "User already exists.")
        except SQLAlchemyError:
            logger.exception("Registration failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to register user.")

        logger.info("Registered user_id=%s", user_id)
        return Outcome.success(created)

    def get_profile(self, user_id: int) -> Outcome[User]:
        try:
            user = self._store.get_by_id(user_id)
        except SQLAlchemyError:
            logger.exception("Profile lookup failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to get user.")
        if user is None:
            return Outcome.fail(ErrorKind.NOT_FOUND, "User not found.")
        return Outcome.success(user)

    def change_password(
        self,
        user_id: int,
        password: str,
        new_password: str,
        confirm_new_password: str,
    ) -> Outcome[User]:
        """Replace the password after re-checking the current one."""
        if not password or not new_password or not confirm_new_password:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "All fields are required.")
        if new_password != confirm_new_password:
            return Outcome.fail(ErrorKind.INVALID_INPUT, "New password and confirm new password do not match.")
        if password_too_long(new_password):
            return Outcome.fail(ErrorKind.INVALID_INPUT, "Password must be at most 72 bytes.")

        try:
            user = self._store.get_by_id(user_id)
            if user is None:
                return Outcome.fail(ErrorKind.NOT_FOUND, "User not found.")
            if not verify_password(password, user.hashed_password):
                return Outcome.fail(ErrorKind.UNAUTHORIZED, "Invalid password.")
            self._store.set_password(user_id, hash_password(new_password))
        except SQLAlchemyError:
            logger.exception("Password change failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to update password.")

        logger.info("Password changed for user_id=%s", user_id)
        return Outcome.success(user)

    def update_profile(
        self,
        user_id: int,
        first_name: str | None = None,
        last_name: str | None = None,
        username: str | None = None,
        tagline: str | None = None,
        bio: str | None = None,
        portfolio_url: str | None = None,
    ) -> Outcome[User]:
        """Apply a partial profile update.

        None leaves a field unchanged. Empty names are ignored; an empty
        tagline, bio, or portfolio_url clears it. A username already held by
        another account fails CONFLICT. Access tokens issued before a username
        change keep the old username claim until the next refresh or login.
        """
        fields: dict = {}
        if first_name:
            fields["first_name"] = first_name
        if last_name:
            fields["last_name"] = last_name
        for name, value in (("tagline", tagline), ("bio", bio), ("portfolio_url", portfolio_url)):
            if value is not None:
                fields[name] = value or None

        try:
            user = self._store.get_by_id(user_id)
            if user is None:
                return Outcome.fail(ErrorKind.NOT_FOUND, "User not found.")
            wanted = (username or "").strip().lower()
            if wanted and wanted != user.username:
                holder = self._store.get_by_username(wanted)
                if holder is not None and holder.id != user_id:
                    return Outcome.fail(ErrorKind.CONFLICT, "Username already exists.")
                fields["username"] = wanted
            if fields:
                self._store.update_user(user_id, **fields)
            updated = self._store.get_by_id(user_id)
        except IntegrityError:
            # Another account took the username between the check and the write.
            return Outcome.fail(ErrorKind.CONFLICT, "Username already exists.")
        except SQLAlchemyError:
            logger.exception("Profile update failed with an internal error")
            return Outcome.fail(ErrorKind.INTERNAL, "Failed to update profile.")

        logger.info("Profile updated for user_id=%s fields=%s", user_id, sorted(fields))
        return Outcome.success(updated)
