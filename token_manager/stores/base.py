"""Key store abstraction shared by every persistence backend."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Tuple

from ..models import StoreOp

Expectation = Tuple[str, Optional[bytes]]


class KeyStore(Protocol):
    """Protocol for durable, TTL-aware key/value backends.

    All methods block. Absence of a key is a normal outcome, never an error;
    backend failures raise :class:`~token_manager.errors.StoreUnavailable`.
    """

    def get(self, key: str) -> Optional[bytes]:
        """Return the value stored at ``key`` or ``None``."""

    def set(self, key: str, value: bytes, ttl: Optional[float] = None) -> None:
        """Store ``value`` at ``key``, expiring after ``ttl`` seconds if given."""

    def set_many(
        self, ops: Iterable[StoreOp], expect: Optional[Expectation] = None
    ) -> bool:
        """Apply ``ops`` as one atomic, isolated unit.

        When ``expect=(key, value)`` is given the batch is applied only if
        ``key`` currently holds ``value`` (``None`` meaning absent). Returns
        ``False`` without applying anything when that check fails.
        """

    def ttl(self, key: str) -> Optional[float]:
        """Remaining lifetime of ``key`` in seconds, ``None`` if persistent or absent."""

    def close(self) -> None:
        """Release backend resources."""


class KeyNamespace:
    """Builds store keys of the form ``{prefix}:{service}:{record}[:{parts}]``."""

    PRIVATE_KEY = "private_key"
    PUBLIC_KEY = "public_key"
    KEY_ID = "key_id"
    ISSUER_PUBLIC_KEY = "issuer_public_key"

    def __init__(self, prefix: str, service: str) -> None:
        self.prefix = prefix
        self.service = service

    def key(self, record: str, *parts: str) -> str:
        return ":".join([self.prefix, self.service, record, *parts])

    def private_key(self, kid: str) -> str:
        return self.key(self.PRIVATE_KEY, kid)

    def public_key(self, kid: str) -> str:
        return self.key(self.PUBLIC_KEY, kid)

    def key_id(self) -> str:
        return self.key(self.KEY_ID)

    def issuer_public_key(self, issuer: str, kid: str) -> str:
        return self.key(self.ISSUER_PUBLIC_KEY, issuer, kid)
