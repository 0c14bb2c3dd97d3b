"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account is the mapper.
CLI and route code never touches SQL directly.

The magic link protocol treats this as an external account directory: it
resolves a locator to an Account and reads the account id. It never creates,
changes, or deletes accounts -- only the add-account CLI command does that.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account, EmailLocator, IdLocator, Locator, LoginLocator
from core.errors import AccountExists, AccountNotFound, storage_fault

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("login", String(60), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)


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


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///magiclogin.db")
        account_id = store.create_account(Account(login="alice", email="alice@example.com"))
        account = store.resolve(classify_locator("alice@example.com"))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        with storage_fault("account schema setup"):
            _metadata.create_all(self.engine)

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises AccountExists if the login or email is taken, StorageFault on
        any other database error.
        """
        with storage_fault("creating account"):
            try:
                with self.engine.connect() as conn:
                    result = conn.execute(
                        _accounts.insert().values(
                            login=account.login,
                            email=account.email,
                            created_at=_now_iso(),
                        )
                    )
                    conn.commit()
            except IntegrityError as exc:
                raise AccountExists(
                    f"An account with login {account.login!r} or email {account.email!r} already exists."
                ) from exc
        return result.inserted_primary_key[0]

    def get_by_id(self, account_id: int) -> Account | None:
        with storage_fault("account lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_login(self, login: str) -> Account | None:
        """Look up an account by exact login (case-sensitive)."""
        with storage_fault("account lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(_accounts.select().where(_accounts.c.login == login)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by email. Email comparison is case-insensitive."""
        with storage_fault("account lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    _accounts.select().where(func.lower(_accounts.c.email) == email.lower())
                ).fetchone()
        return _row_to_account(row) if row is not None else None

    def resolve(self, locator: Locator) -> Account:
        """Return the account a locator points at, or raise AccountNotFound.

        An email locator that matches no email is retried as a login, because
        logins are allowed to look like email addresses.
        """
        account: Account | None = None
        if isinstance(locator, EmailLocator):
            account = self.get_by_email(locator.email) or self.get_by_login(locator.email)
            shown = locator.email
        elif isinstance(locator, IdLocator):
            account = self.get_by_id(locator.id)
            shown = str(locator.id)
        elif isinstance(locator, LoginLocator):
            account = self.get_by_login(locator.login)
            shown = locator.login
        else:
            raise TypeError(f"Unsupported locator: {locator!r}")

        if account is None:
            raise AccountNotFound(f"No account found by: {shown}")
        return account

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        login=row.login,
        email=row.email,
        created_at=row.created_at,
    )
