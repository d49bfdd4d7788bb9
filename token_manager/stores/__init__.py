"""Key store backends and factory."""

from __future__ import annotations

import os
from typing import Optional

from ..config import TokenManagerConfig
from .base import KeyNamespace, KeyStore
from .inmemory import InMemoryKeyStore
from .sqlite import SQLiteKeyStore


def get_store(
    url: Optional[str] = None, config: Optional[TokenManagerConfig] = None
) -> KeyStore:
    """Factory function to obtain a key store.

    The backend is selected from ``url``, which can be provided explicitly,
    via environment variable ``TOKEN_MANAGER_STORE_URL``, or from the loaded
    configuration. ``memory://`` (the default) gives a process-local store.
    """

    config = config or TokenManagerConfig()
    url = url or os.getenv("TOKEN_MANAGER_STORE_URL") or config.store_url

    if url.startswith("memory://"):
        return InMemoryKeyStore()
    if url.startswith("sqlite://"):
        path = url.replace("sqlite://", "", 1)
        return SQLiteKeyStore(path or ":memory:")
    if url == "redis" or url.startswith(("redis://", "rediss://", "unix://")):
        from .redis import RedisKeyStore

        if url == "redis":
            redis_conf = config.redis
            return RedisKeyStore(
                host=redis_conf.host,
                port=redis_conf.port,
                db=redis_conf.db,
                password=redis_conf.password,
            )
        return RedisKeyStore.from_url(url)
    raise ValueError(f"Unsupported key store backend: {url}")


__all__ = [
    "KeyNamespace",
    "KeyStore",
    "InMemoryKeyStore",
    "SQLiteKeyStore",
    "get_store",
]
