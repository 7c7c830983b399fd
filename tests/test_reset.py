"""
tests/test_reset.py -- Unit tests for auth/reset.py (PasswordResetFlow).

Covers:
  - request stores only the digest and an absolute expiry, emails the raw token
  - confirm changes the password, clears the reset fields, sends confirmation
  - tokens are single use and stop working after the window
  - input validation and delivery failures
"""

from __future__ import annotations

from auth.models import ErrorKind, User
from auth.reset import PasswordResetFlow
from auth.sessions import SessionLifecycle
from auth.store import UserStore
from auth.tokens import hash_token, verify_password


class TestRequestReset:
    def test_stores_digest_and_emails_token(
        self, reset_flow: PasswordResetFlow, store: UserStore, mailer, clock, alice: User
    ) -> None:
        outcome = reset_flow.request_reset("alice@example.com")
        assert outcome.ok
        token = outcome.value
        assert mailer.reset_emails == [("alice", "alice@example.com", token)]

        stored = store.get_by_id(alice.id)
        assert stored.reset_token_hash == hash_token(token)
        assert stored.reset_token_hash != token
        assert stored.reset_token_expiry == clock().timestamp() + 20 * 60

    def test_email_lookup_ignores_case(self, reset_flow: PasswordResetFlow, alice: User) -> None:
        assert reset_flow.request_reset("ALICE@example.com").ok

    def test_unknown_email_is_not_found(self, reset_flow: PasswordResetFlow, mailer) -> None:
        outcome = reset_flow.request_reset("ghost@example.com")
        assert outcome.failure.kind is ErrorKind.NOT_FOUND
        assert mailer.reset_emails == []

    def test_empty_email_is_invalid_input(self, reset_flow: PasswordResetFlow) -> None:
        assert reset_flow.request_reset("").failure.kind is ErrorKind.INVALID_INPUT

    def test_delivery_failure_is_internal(self, reset_flow: PasswordResetFlow, mailer, alice: User) -> None:
        mailer.fail_reset = True
        assert reset_flow.request_reset("alice@example.com").failure.kind is ErrorKind.INTERNAL

    def test_new_request_replaces_previous_token(self, reset_flow: PasswordResetFlow, alice: User) -> None:
        first = reset_flow.request_reset("alice@example.com").value
        reset_flow.request_reset("alice@example.com")
        outcome = reset_flow.confirm_reset(first, "newpass", "newpass")
        assert outcome.failure.kind is ErrorKind.INVALID_OR_EXPIRED


class TestConfirmReset:
    def test_sets_password_and_clears_fields(
        self, reset_flow: PasswordResetFlow, store: UserStore, mailer, alice: User
    ) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        assert reset_flow.confirm_reset(token, "newpass", "newpass").ok

        stored = store.get_by_id(alice.id)
        assert verify_password("newpass", stored.hashed_password)
        assert not verify_password("correct", stored.hashed_password)
        assert stored.reset_token_hash is None
        assert stored.reset_token_expiry is None
        assert mailer.success_emails == [("alice", "alice@example.com")]

    def test_token_is_single_use(self, reset_flow: PasswordResetFlow, store: UserStore, alice: User) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        assert reset_flow.confirm_reset(token, "newpass", "newpass").ok
        outcome = reset_flow.confirm_reset(token, "other", "other")
        assert outcome.failure.kind is ErrorKind.INVALID_OR_EXPIRED
        assert verify_password("newpass", store.get_by_id(alice.id).hashed_password)

    def test_expired_token_is_rejected(self, reset_flow: PasswordResetFlow, clock, alice: User) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        clock.advance(20 * 60 + 1)
        outcome = reset_flow.confirm_reset(token, "newpass", "newpass")
        assert outcome.failure.kind is ErrorKind.INVALID_OR_EXPIRED

    def test_token_valid_just_before_expiry(self, reset_flow: PasswordResetFlow, clock, alice: User) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        clock.advance(20 * 60 - 1)
        assert reset_flow.confirm_reset(token, "newpass", "newpass").ok

    def test_unknown_token(self, reset_flow: PasswordResetFlow, alice: User) -> None:
        outcome = reset_flow.confirm_reset("deadbeef", "newpass", "newpass")
        assert outcome.failure.kind is ErrorKind.INVALID_OR_EXPIRED

    def test_mismatched_passwords(self, reset_flow: PasswordResetFlow, alice: User) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        outcome = reset_flow.confirm_reset(token, "newpass", "different")
        assert outcome.failure.kind is ErrorKind.INVALID_INPUT
        # The token survives a rejected attempt.
        assert reset_flow.confirm_reset(token, "newpass", "newpass").ok

    def test_missing_fields(self, reset_flow: PasswordResetFlow) -> None:
        assert reset_flow.confirm_reset("", "a", "a").failure.kind is ErrorKind.INVALID_INPUT
        assert reset_flow.confirm_reset("t", "", "").failure.kind is ErrorKind.INVALID_INPUT

    def test_overlong_password(self, reset_flow: PasswordResetFlow, alice: User) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        long_pw = "p" * 73
        assert reset_flow.confirm_reset(token, long_pw, long_pw).failure.kind is ErrorKind.INVALID_INPUT

    def test_confirmation_email_failure_still_succeeds(
        self, reset_flow: PasswordResetFlow, mailer, alice: User
    ) -> None:
        token = reset_flow.request_reset("alice@example.com").value
        mailer.fail_success = True
        assert reset_flow.confirm_reset(token, "newpass", "newpass").ok

    def test_reset_does_not_end_existing_session(
        self, reset_flow: PasswordResetFlow, sessions: SessionLifecycle, alice: User
    ) -> None:
        tokens = sessions.login("alice", "correct").value.tokens
        token = reset_flow.request_reset("alice@example.com").value
        reset_flow.confirm_reset(token, "newpass", "newpass")
        assert sessions.refresh(tokens.refresh_token).ok
        assert sessions.login("alice", "newpass").ok
