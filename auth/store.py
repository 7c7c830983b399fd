"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Services never touch
SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Only digests of refresh and reset tokens are written here. The plaintext
  tokens never reach this module.

  Two updates are conditional (compare-and-swap) so concurrent requests cannot
  both succeed:
    swap_refresh_token_hash() -- rotation only lands if the stored digest is
        still the one the caller verified.
    consume_reset_token()     -- a reset token is spent by exactly one request.

  email and username are stored lowercased; lookups lowercase their input, so
  matching is case-insensitive without a collation dependency.

Layer rule: no imports from api/, core/, or notify/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("tagline", String(160)),
    Column("bio", Text),
    Column("portfolio_url", Text),
    Column("hashed_password", Text),
    Column("refresh_token_hash", String(64)),  # SHA-256 hex of the live refresh token
    Column("reset_token_hash", String(64), index=True),  # SHA-256 hex of the pending reset token
    Column("reset_token_expiry", Float),  # epoch seconds, UTC
    Column("created_at", String(32), nullable=False),
    Column("last_login", Text),
)

# Columns that unset_fields() may null out. Identity and credential columns
# (id, email, username, hashed_password) are not in this list.
_NULLABLE_FIELDS = frozenset({"refresh_token_hash", "reset_token_hash", "reset_token_expiry", "last_login"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(email="a@example.com", username="alice", hashed_password=...))
        user = store.find_by_email_or_username("ALICE")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username is taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email.lower(),
                    username=user.username.lower(),
                    first_name=user.first_name,
                    last_name=user.last_name,
                    hashed_password=user.hashed_password,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username.lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email_or_username(self, identifier: str) -> User | None:
        """Look up a user whose email OR username equals identifier (case-insensitive)."""
        value = identifier.lower()
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == value, _users.c.username == value))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_or_username_taken(self, email: str, username: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.email == email.lower(), _users.c.username == username.lower()))
            ).fetchone()
        return row is not None

    def get_by_reset_token(self, token_hash: str, now: float) -> User | None:
        """Return the user holding this reset digest if it has not yet expired."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where((_users.c.reset_token_hash == token_hash) & (_users.c.reset_token_expiry > now))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Field updates
    # ------------------------------------------------------------------

    def update_user(self, user_id: int, **fields) -> bool:
        """Set one or more columns atomically. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def unset_fields(self, user_id: int, *names: str) -> bool:
        """Null out the named columns atomically. Returns False if user_id was not found.

        Only columns in _NULLABLE_FIELDS are accepted; anything else raises
        ValueError rather than being ignored.
        """
        unknown = set(names) - _NULLABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot unset fields: {sorted(unknown)!r}")
        return self.update_user(user_id, **{name: None for name in names})

    def set_password(self, user_id: int, hashed_password: str) -> bool:
        return self.update_user(user_id, hashed_password=hashed_password)

    def set_refresh_token_hash(self, user_id: int, token_hash: str) -> bool:
        """Overwrite the stored refresh digest. Any previous refresh token stops working."""
        return self.update_user(user_id, refresh_token_hash=token_hash)

    def swap_refresh_token_hash(self, user_id: int, expected_hash: str, new_hash: str) -> bool:
        """Replace the refresh digest only if it still equals expected_hash.

        Returns False when another request already rotated (or cleared) the
        digest in between, so only one of two racing refreshes can win.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.refresh_token_hash == expected_hash))
                .values(refresh_token_hash=new_hash)
            )
            conn.commit()
        return result.rowcount > 0

    def set_reset_token(self, user_id: int, token_hash: str, expiry: float) -> bool:
        return self.update_user(user_id, reset_token_hash=token_hash, reset_token_expiry=expiry)

    def consume_reset_token(self, user_id: int, token_hash: str, hashed_password: str) -> bool:
        """Set a new password and clear the reset fields if token_hash is still pending.

        The WHERE clause on reset_token_hash makes the reset single-use even
        when two requests present the same token concurrently.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.reset_token_hash == token_hash))
                .values(hashed_password=hashed_password, reset_token_hash=None, reset_token_expiry=None)
            )
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        self.update_user(user_id, last_login=_now_iso())

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        tagline=row.tagline,
        bio=row.bio,
        portfolio_url=row.portfolio_url,
        hashed_password=row.hashed_password,
        refresh_token_hash=row.refresh_token_hash,
        reset_token_hash=row.reset_token_hash,
        reset_token_expiry=row.reset_token_expiry,
        created_at=row.created_at,
        last_login=row.last_login,
    )
