"""
cache/store.py -- SQLite-backed ephemeral store for magic link records.

Every entry carries its own expiry. Reads never return an expired entry, and
callers never have to clean up: take() drops whatever it finds, and
purge_expired() trims entries nobody came back for (for example links
orphaned by an endpoint rotation).

take() is the one concurrency-sensitive operation in magic-login. It is a
single DELETE ... RETURNING statement, so two redemption attempts for the
same key -- from two threads or two processes sharing the database file --
cannot both get the row. Requires SQLite 3.35+.

Usage:
    cache = TokenCache(settings.token_db_path)
    cache.put("magic-login/ab12-cd34-ef56", {"account_id": 42}, ttl=300)
    cache.take("magic-login/ab12-cd34-ef56")   # dict, then None forever after
    cache.purge_expired()
"""

import json
import sqlite3
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Optional, Union

from core.errors import storage_fault

_DDL = """
CREATE TABLE IF NOT EXISTS magic_tokens (
    token_key   TEXT PRIMARY KEY,
    data        TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class TokenCache:
    def __init__(
        self,
        db_path: Union[Path, str],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.clock = clock
        # One connection shared by the threads of this process; the lock keeps
        # their statements and commits from interleaving.
        self._lock = threading.Lock()
        with storage_fault("opening token store"):
            self._conn = sqlite3.connect(db_path, check_same_thread=False, timeout=10)
            if str(db_path) != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_DDL)
            self._conn.commit()

    def put(self, key: str, data: dict, ttl: int) -> None:
        """Store data under key, readable for the next ttl seconds. Replaces any existing entry."""
        expires_at = self.clock() + ttl
        with self._lock, storage_fault(f"writing {key}"):
            self._conn.execute(
                "INSERT OR REPLACE INTO magic_tokens (token_key, data, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(data), expires_at),
            )
            self._conn.commit()

    def take(self, key: str) -> Optional[dict]:
        """Remove and return the entry for key, or None if absent or expired.

        An expired entry is removed as well, but reported as absent.
        """
        now = self.clock()
        with self._lock, storage_fault(f"taking {key}"):
            rows = self._conn.execute(
                "DELETE FROM magic_tokens WHERE token_key = ? RETURNING data, expires_at",
                (key,),
            ).fetchall()
            self._conn.commit()
        if not rows:
            return None
        data, expires_at = rows[0]
        if now >= expires_at:
            return None
        return json.loads(data)

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self._lock, storage_fault("purging expired tokens"):
            cursor = self._conn.execute("DELETE FROM magic_tokens WHERE expires_at <= ?", (self.clock(),))
            self._conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        self._conn.close()
