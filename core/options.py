"""
core/options.py -- Opaque string option store (SQLAlchemy Core).

Holds small named settings that must be shared by every process pointing at
the same database: the current magic-link endpoint secret and the companion
server state. Values are plain strings; callers own their meaning.

Pattern: Repository. Callers never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: core/ is the kernel. No imports from api/, auth/, or cache/.
"""

from __future__ import annotations

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from core.errors import storage_fault

_metadata = MetaData()

_options = Table(
    "options",
    _metadata,
    Column("name", String(191), primary_key=True),
    Column("value", Text, nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on a concurrent rotate."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class OptionStore:
    """Repository for named string options.

    Usage:
        options = OptionStore("sqlite:///magiclogin.db")
        options.add("greeting", "hello")      # no-op if already set
        options.get("greeting")               # "hello"
        options.update("greeting", "bye")     # unconditional
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        with storage_fault("option schema setup"):
            _metadata.create_all(self.engine)

    def get(self, name: str) -> str | None:
        """Return the option value, or None if it has never been set."""
        with storage_fault(f"reading option {name!r}"):
            with self.engine.connect() as conn:
                return conn.execute(select(_options.c.value).where(_options.c.name == name)).scalar()

    def add(self, name: str, value: str) -> bool:
        """Insert the option only if it does not exist yet.

        Returns True if this call created it. When several callers race, the
        first INSERT wins and the rest are ignored, so every caller that reads
        afterwards sees the same value.
        """
        with storage_fault(f"adding option {name!r}"):
            with self.engine.connect() as conn:
                result = conn.execute(
                    text("INSERT OR IGNORE INTO options (name, value) VALUES (:name, :value)"),
                    {"name": name, "value": value},
                )
                conn.commit()
        return result.rowcount > 0

    def update(self, name: str, value: str) -> None:
        """Set the option, creating it if needed. Single statement upsert."""
        with storage_fault(f"updating option {name!r}"):
            with self.engine.connect() as conn:
                conn.execute(
                    text(
                        "INSERT INTO options (name, value) VALUES (:name, :value) "
                        "ON CONFLICT(name) DO UPDATE SET value = excluded.value"
                    ),
                    {"name": name, "value": value},
                )
                conn.commit()

    def close(self) -> None:
        self.engine.dispose()
