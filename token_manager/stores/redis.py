"""Redis key store shared by every instance of a service."""

from __future__ import annotations

from typing import Any, Iterable, Optional

import redis

from ..errors import StoreUnavailable
from ..models import StoreOp
from .base import Expectation, KeyStore


def _millis(ttl: float) -> int:
    return max(1, int(ttl * 1000))


class RedisKeyStore(KeyStore):
    """Redis-backed key store.

    ``set_many`` queues its operations in a ``MULTI/EXEC`` pipeline; the
    optional precondition is checked under ``WATCH`` so a concurrent writer
    aborts the transaction instead of interleaving with it.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        client: Optional[Any] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self._redis = client or redis.Redis(
            host=host, port=port, db=db, password=password
        )

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyStore":
        client = redis.Redis.from_url(url)
        kwargs = client.connection_pool.connection_kwargs
        return cls(
            host=kwargs.get("host", "localhost"),
            port=kwargs.get("port", 6379),
            db=kwargs.get("db", 0),
            client=client,
        )

    # ------------------------------------------------------------------
    def _queue(self, pipe: Any, op: StoreOp) -> None:
        if op.is_expire:
            pipe.pexpire(op.key, _millis(op.ttl))
        elif op.ttl is None:
            pipe.set(op.key, op.value)
        else:
            pipe.set(op.key, op.value, px=_millis(op.ttl))

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._redis.get(key)
        except redis.RedisError as e:
            raise StoreUnavailable(f"redis get {key}: {e}") from e

    def set(self, key: str, value: bytes, ttl: Optional[float] = None) -> None:
        try:
            if ttl is None:
                self._redis.set(key, value)
            else:
                self._redis.set(key, value, px=_millis(ttl))
        except redis.RedisError as e:
            raise StoreUnavailable(f"redis set {key}: {e}") from e

    def set_many(
        self, ops: Iterable[StoreOp], expect: Optional[Expectation] = None
    ) -> bool:
        ops = list(ops)
        try:
            with self._redis.pipeline(transaction=True) as pipe:
                if expect is not None:
                    key, expected = expect
                    pipe.watch(key)
                    if pipe.get(key) != expected:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                for op in ops:
                    self._queue(pipe, op)
                pipe.execute()
        except redis.WatchError:
            return False
        except redis.RedisError as e:
            raise StoreUnavailable(f"redis transaction: {e}") from e
        return True

    def ttl(self, key: str) -> Optional[float]:
        try:
            remaining = self._redis.pttl(key)
        except redis.RedisError as e:
            raise StoreUnavailable(f"redis pttl {key}: {e}") from e
        # -1: no expiry, -2: absent
        return remaining / 1000 if remaining >= 0 else None

    def close(self) -> None:
        self._redis.close()
