"""In-memory implementation of the key store."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Iterable, Optional, Tuple

from ..models import StoreOp
from .base import Expectation, KeyStore

_Entry = Tuple[bytes, Optional[float]]


class InMemoryKeyStore(KeyStore):
    """Store keys in local memory.

    Useful for tests or single-process deployments. Data is not shared with
    other processes and is lost on restart. Expired entries are evicted
    lazily on access.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._data: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def _live(self, key: str, now: float) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and expires_at <= now:
            del self._data[key]
            return None
        return entry

    def _expires_at(self, ttl: Optional[float], now: float) -> Optional[float]:
        return None if ttl is None else now + ttl

    def _apply(self, op: StoreOp, now: float) -> None:
        if op.is_expire:
            entry = self._live(op.key, now)
            if entry is not None:
                self._data[op.key] = (entry[0], self._expires_at(op.ttl, now))
        else:
            self._data[op.key] = (op.value, self._expires_at(op.ttl, now))

    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._live(key, self._clock())
        return entry[0] if entry else None

    def set(self, key: str, value: bytes, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._apply(StoreOp.set(key, value, ttl), self._clock())

    def set_many(
        self, ops: Iterable[StoreOp], expect: Optional[Expectation] = None
    ) -> bool:
        ops = list(ops)
        with self._lock:
            now = self._clock()
            if expect is not None:
                key, expected = expect
                entry = self._live(key, now)
                if (entry[0] if entry else None) != expected:
                    return False
            for op in ops:
                self._apply(op, now)
        return True

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime of ``key`` in seconds, ``None`` if persistent or absent."""
        with self._lock:
            now = self._clock()
            entry = self._live(key, now)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - now

    def close(self) -> None:
        pass
