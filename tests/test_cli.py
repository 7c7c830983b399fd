"""
tests/test_cli.py -- main.py account administration commands.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from auth.models import User
from auth.store import UserStore
from auth.tokens import verify_password
from main import build_parser, main


def test_create_user(store: UserStore, capsys) -> None:
    code = main(
        [
            "create-user",
            "--email",
            "bob@example.com",
            "--username",
            "bob",
            "--first-name",
            "Bob",
            "--last-name",
            "Builder",
            "--password",
            "hunter22",
        ],
        store=store,
    )
    assert code == 0
    assert "Created user bob" in capsys.readouterr().out
    assert verify_password("hunter22", store.get_by_email("bob@example.com").hashed_password)


def test_create_user_prompts_for_password(store: UserStore) -> None:
    argv = ["create-user", "--email", "c@example.com", "--username", "c", "--first-name", "C", "--last-name", "D"]
    with patch("main.getpass.getpass", return_value="prompted") as prompt:
        assert main(argv, store=store) == 0
    prompt.assert_called_once()
    assert verify_password("prompted", store.get_by_email("c@example.com").hashed_password)


def test_create_duplicate_user_fails(store: UserStore, alice: User, capsys) -> None:
    argv = [
        "create-user",
        "--email",
        "alice@example.com",
        "--username",
        "alice2",
        "--first-name",
        "A",
        "--last-name",
        "L",
        "--password",
        "pw",
    ]
    assert main(argv, store=store) == 1
    assert "[!] User already exists." in capsys.readouterr().out


def test_request_reset_sets_digest(store: UserStore, alice: User, capsys) -> None:
    # SMTP is unconfigured in tests, so the mailer only logs.
    assert main(["request-reset", "--email", "alice@example.com"], store=store) == 0
    assert store.get_by_id(alice.id).reset_token_hash is not None
    assert "Reset link sent" in capsys.readouterr().out


def test_request_reset_unknown_email(store: UserStore) -> None:
    assert main(["request-reset", "--email", "ghost@example.com"], store=store) == 1


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
