"""SQLite implementation of the key store."""

from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from ..errors import StoreUnavailable
from ..models import StoreOp
from .base import Expectation, KeyStore


class SQLiteKeyStore(KeyStore):
    """Persist keys in a SQLite database.

    Several processes on one host can share the file; ``set_many`` runs in a
    single ``BEGIN IMMEDIATE`` transaction so readers never see a partial batch.
    """

    def __init__(
        self, db_path: str | Path, clock: Callable[[], float] = time.time
    ) -> None:
        self.db_path = str(db_path)
        self._clock = clock
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level=None
            )
            self._ensure_schema()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self.db_path}: {e}") from e

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS keys (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                expires_at REAL
            )
            """
        )

    # ------------------------------------------------------------------
    # Helper methods
    def _expires_at(self, ttl: Optional[float], now: float) -> Optional[float]:
        return None if ttl is None else now + ttl

    def _current(self, key: str, now: float) -> Optional[bytes]:
        row = self._conn.execute(
            "SELECT value FROM keys WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
            (key, now),
        ).fetchone()
        return bytes(row[0]) if row else None

    def _apply(self, op: StoreOp, now: float) -> None:
        expires_at = self._expires_at(op.ttl, now)
        if op.is_expire:
            self._conn.execute(
                "UPDATE keys SET expires_at = ? WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (expires_at, op.key, now),
            )
        else:
            self._conn.execute(
                "INSERT OR REPLACE INTO keys (key, value, expires_at) VALUES (?, ?, ?)",
                (op.key, op.value, expires_at),
            )

    def _run(self, fn: Callable[[], Any]) -> Any:
        with self._lock:
            try:
                return fn()
            except sqlite3.Error as e:
                raise StoreUnavailable(f"sqlite store {self.db_path}: {e}") from e

    # ------------------------------------------------------------------
    # KeyStore API
    def get(self, key: str) -> Optional[bytes]:
        return self._run(lambda: self._current(key, self._clock()))

    def set(self, key: str, value: bytes, ttl: Optional[float] = None) -> None:
        self.set_many([StoreOp.set(key, value, ttl)])

    def set_many(
        self, ops: Iterable[StoreOp], expect: Optional[Expectation] = None
    ) -> bool:
        ops = list(ops)

        def _transaction() -> bool:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                now = self._clock()
                if expect is not None:
                    key, expected = expect
                    if self._current(key, now) != expected:
                        self._conn.execute("ROLLBACK")
                        return False
                for op in ops:
                    self._apply(op, now)
                self._conn.execute("DELETE FROM keys WHERE expires_at <= ?", (now,))
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
            return True

        return self._run(_transaction)

    def ttl(self, key: str) -> Optional[float]:
        def _remaining() -> Optional[float]:
            now = self._clock()
            row = self._conn.execute(
                "SELECT expires_at FROM keys WHERE key = ? AND expires_at > ?",
                (key, now),
            ).fetchone()
            return row[0] - now if row else None

        return self._run(_remaining)

    def close(self) -> None:
        self._conn.close()
