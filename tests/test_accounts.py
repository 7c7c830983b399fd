"""
tests/test_accounts.py -- Unit tests for auth/accounts.py (AccountService).
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from auth.accounts import AccountService
from auth.models import ErrorKind, User
from auth.sessions import SessionLifecycle
from auth.store import UserStore
from auth.tokens import CredentialKind, CredentialSigner, verify_password


def _register(accounts: AccountService, **overrides):
    fields = {
        "first_name": "Bob",
        "last_name": "Builder",
        "email": "bob@example.com",
        "username": "bob",
        "password": "hunter22",
    }
    fields.update(overrides)
    return accounts.register(**fields)


class TestRegister:
    def test_register_hashes_password(self, accounts: AccountService, store: UserStore) -> None:
        outcome = _register(accounts, email="Bob@Example.com", username="Bob")
        assert outcome.ok
        user = outcome.value
        assert user.id is not None
        assert user.email == "bob@example.com"
        assert user.username == "bob"
        assert user.hashed_password != "hunter22"
        assert verify_password("hunter22", store.get_by_id(user.id).hashed_password)

    @pytest.mark.parametrize("field", ["first_name", "last_name", "email", "username", "password"])
    def test_missing_field(self, accounts: AccountService, field: str) -> None:
        outcome = _register(accounts, **{field: ""})
        assert outcome.failure.kind is ErrorKind.INVALID_INPUT
        assert field in outcome.failure.message

    def test_duplicate_email_conflicts(self, accounts: AccountService, alice: User) -> None:
        outcome = _register(accounts, email="ALICE@example.com")
        assert outcome.failure.kind is ErrorKind.CONFLICT

    def test_duplicate_username_conflicts(self, accounts: AccountService, alice: User) -> None:
        assert _register(accounts, username="alice").failure.kind is ErrorKind.CONFLICT

    def test_concurrent_insert_conflicts(self) -> None:
        racing = MagicMock(spec=UserStore)
        racing.email_or_username_taken.return_value = False
        racing.create_user.side_effect = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        assert _register(AccountService(racing)).failure.kind is ErrorKind.CONFLICT

    def test_overlong_password(self, accounts: AccountService) -> None:
        assert _register(accounts, password="x" * 80).failure.kind is ErrorKind.INVALID_INPUT


class TestProfile:
    def test_get_profile(self, accounts: AccountService, alice: User) -> None:
        assert accounts.get_profile(alice.id).value.username == "alice"

    def test_get_profile_missing(self, accounts: AccountService) -> None:
        assert accounts.get_profile(77).failure.kind is ErrorKind.NOT_FOUND


class TestChangePassword:
    def test_change_password(self, accounts: AccountService, store: UserStore, alice: User) -> None:
        assert accounts.change_password(alice.id, "correct", "fresh", "fresh").ok
        assert verify_password("fresh", store.get_by_id(alice.id).hashed_password)

    def test_wrong_current_password(self, accounts: AccountService, alice: User) -> None:
        outcome = accounts.change_password(alice.id, "nope", "fresh", "fresh")
        assert outcome.failure.kind is ErrorKind.UNAUTHORIZED

    def test_confirmation_mismatch(self, accounts: AccountService, alice: User) -> None:
        outcome = accounts.change_password(alice.id, "correct", "fresh", "stale")
        assert outcome.failure.kind is ErrorKind.INVALID_INPUT

    def test_missing_user(self, accounts: AccountService) -> None:
        assert accounts.change_password(77, "a", "b", "b").failure.kind is ErrorKind.NOT_FOUND


class TestUpdateProfile:
    def test_partial_update(self, accounts: AccountService, store: UserStore, alice: User) -> None:
        outcome = accounts.update_profile(alice.id, tagline="Down the rabbit hole", portfolio_url="https://a.example")
        assert outcome.ok
        stored = store.get_by_id(alice.id)
        assert stored.tagline == "Down the rabbit hole"
        assert stored.portfolio_url == "https://a.example"
        assert stored.first_name == "Alice"
        assert stored.bio is None

    def test_empty_names_are_ignored_and_empty_extras_clear(
        self, accounts: AccountService, store: UserStore, alice: User
    ) -> None:
        accounts.update_profile(alice.id, bio="Curious.")
        accounts.update_profile(alice.id, first_name="", last_name="", bio="")
        stored = store.get_by_id(alice.id)
        assert stored.first_name == "Alice"
        assert stored.last_name == "Liddell"
        assert stored.bio is None

    def test_rename_lowercases(self, accounts: AccountService, store: UserStore, alice: User) -> None:
        assert accounts.update_profile(alice.id, username=" Wonder ").value.username == "wonder"
        assert store.find_by_email_or_username("wonder").id == alice.id
        assert store.get_by_username("alice") is None

    def test_same_username_is_not_a_conflict(self, accounts: AccountService, alice: User) -> None:
        assert accounts.update_profile(alice.id, username="ALICE").ok

    def test_taken_username_conflicts(self, accounts: AccountService, store: UserStore, alice: User) -> None:
        _register(accounts)
        outcome = accounts.update_profile(alice.id, username="bob")
        assert outcome.failure.kind is ErrorKind.CONFLICT
        assert store.get_by_id(alice.id).username == "alice"

    def test_missing_user(self, accounts: AccountService) -> None:
        assert accounts.update_profile(77, bio="x").failure.kind is ErrorKind.NOT_FOUND

    def test_next_refresh_carries_new_username(
        self, accounts: AccountService, sessions: SessionLifecycle, signer: CredentialSigner, alice: User
    ) -> None:
        tokens = sessions.login("alice", "correct").value.tokens
        accounts.update_profile(alice.id, username="wonder")
        renewed = sessions.refresh(tokens.refresh_token).value
        assert signer.verify(CredentialKind.ACCESS, renewed.access_token)["username"] == "wonder"
