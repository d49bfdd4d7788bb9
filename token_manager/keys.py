"""Signing key generation, rotation and lookup for the local service."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .constants import (
    DEFAULT_KEY_ID_REFRESH,
    DEFAULT_KEY_PREFIX,
    DEFAULT_KEY_SIZE,
    DEFAULT_OLD_KEY_TTL,
)
from .errors import StoreUnavailable
from .models import KeyPair, ServiceIdentity, StoreOp
from .stores.base import KeyNamespace, KeyStore

logger = logging.getLogger(__name__)

_MAX_COMMIT_ATTEMPTS = 5


def generate_key_pair(
    key_size: int = DEFAULT_KEY_SIZE, clock: Callable[[], float] = time.time
) -> KeyPair:
    """Create a fresh RSA key pair with a random key id."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return KeyPair(
        key_id=uuid.uuid4().hex,
        private_key=private_pem,
        public_key=public_pem,
        created_at=clock(),
    )


def load_public_key(pem: bytes) -> rsa.RSAPublicKey:
    """Parse a PEM encoded RSA public key, raising ``ValueError`` otherwise."""
    key = serialization.load_pem_public_key(pem)
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("not an RSA public key")
    return key


class KeyLifecycle:
    """Owns the active signing key of one service.

    The store holds every key generation under its key id plus a pointer to
    the active one. Rotation writes the new pair, moves the pointer and
    schedules expiry of the previous pair in a single atomic batch.
    """

    def __init__(
        self,
        store: KeyStore,
        identity: ServiceIdentity,
        old_key_ttl: float = DEFAULT_OLD_KEY_TTL,
        key_size: int = DEFAULT_KEY_SIZE,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        key_id_refresh: float = DEFAULT_KEY_ID_REFRESH,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.identity = identity
        self.old_key_ttl = old_key_ttl
        self.key_size = key_size
        # a key retired elsewhere must be dropped before its records expire
        self.key_id_refresh = min(key_id_refresh, old_key_ttl)
        self._clock = clock
        self.namespace = KeyNamespace(key_prefix, identity.name)

        self._lock = threading.Lock()
        # (kid, private key PEM or None until loaded, time the pointer was read)
        self._active: Optional[Tuple[str, Optional[bytes], float]] = None
        self._public: Dict[str, bytes] = {}
        self._retired: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Active key
    def active_key_id(self) -> str:
        """Return the active key id, generating the first key if none exists.

        The cached id is re-checked against the store pointer every
        ``key_id_refresh`` seconds so a rotation by another process is
        picked up.
        """
        active = self._active
        now = self._clock()
        if active is not None and now - active[2] < self.key_id_refresh:
            return active[0]

        kid = self._read_pointer()
        if kid is None:
            return self._bootstrap()
        self._refresh_active(active, kid, now)
        return kid

    def active_key(self) -> Tuple[str, bytes]:
        """Return a consistent ``(kid, private key PEM)`` snapshot for signing."""
        kid = self.active_key_id()
        active = self._active
        if active is not None and active[0] == kid and active[1] is not None:
            return kid, active[1]

        private_key = self._store.get(self.namespace.private_key(kid))
        if private_key is None:
            logger.warning(
                f"Private key {kid} of {self.identity.name} missing from store, generating a new key"
            )
            pair = self.generate()
            return pair.key_id, pair.private_key

        self._set_active(kid, private_key)
        return kid, private_key

    def active_private_key(self) -> bytes:
        return self.active_key()[1]

    # ------------------------------------------------------------------
    # Generation and rotation
    def generate(self, expire_current: bool = False) -> KeyPair:
        """Generate a key pair and make it the active one.

        With ``expire_current`` the previously active records are scheduled
        to expire after ``old_key_ttl``, in the same transaction that moves
        the pointer. If another writer moves the pointer concurrently the
        batch is rebuilt against the new pointer and retried.
        """
        pair = generate_key_pair(self.key_size, self._clock)
        for _ in range(_MAX_COMMIT_ATTEMPTS):
            previous = self._read_pointer()
            if self._commit(pair, previous, expire_current):
                self._activate(pair, previous if expire_current else None)
                logger.info(
                    f"Generated key {pair.key_id} for {self.identity.name} (previous={previous})"
                )
                return pair
            logger.debug(
                f"Key id pointer of {self.identity.name} moved during generation, retrying"
            )
        raise StoreUnavailable(
            f"could not update key id pointer of {self.identity.name} after "
            f"{_MAX_COMMIT_ATTEMPTS} attempts"
        )

    def rotate(self) -> KeyPair:
        """Replace the active key, retiring the previous one."""
        return self.generate(expire_current=True)

    def _bootstrap(self) -> str:
        pair = generate_key_pair(self.key_size, self._clock)
        if self._commit(pair, None, expire_current=False):
            self._activate(pair, None)
            logger.info(f"Generated initial key {pair.key_id} for {self.identity.name}")
            return pair.key_id

        kid = self._read_pointer()
        if kid is None:
            raise StoreUnavailable(
                f"key id pointer of {self.identity.name} vanished during bootstrap"
            )
        logger.info(f"Adopting key {kid} generated concurrently for {self.identity.name}")
        self._set_active(kid, None)
        return kid

    def _commit(
        self, pair: KeyPair, previous: Optional[str], expire_current: bool
    ) -> bool:
        ns = self.namespace
        ops: List[StoreOp] = [
            StoreOp.set(ns.private_key(pair.key_id), pair.private_key),
            StoreOp.set(ns.public_key(pair.key_id), pair.public_key),
            StoreOp.set(ns.key_id(), pair.key_id.encode()),
        ]
        if expire_current and previous is not None:
            ops.append(StoreOp.expire(ns.private_key(previous), self.old_key_ttl))
            ops.append(StoreOp.expire(ns.public_key(previous), self.old_key_ttl))
        expected = previous.encode() if previous is not None else None
        return self._store.set_many(ops, expect=(ns.key_id(), expected))

    # ------------------------------------------------------------------
    # Public keys
    def public_key(self, kid: Optional[str] = None) -> Optional[bytes]:
        """Return the PEM public key for ``kid`` (default: active key).

        Keys are memoized; a key retired by this instance is served from
        memory only until its retirement TTL elapses.
        """
        kid = kid or self.active_key_id()
        retired_until = self._retired.get(kid)
        if retired_until is not None and self._clock() >= retired_until:
            return self._store.get(self.namespace.public_key(kid))

        cached = self._public.get(kid)
        if cached is not None:
            return cached

        public_key = self._store.get(self.namespace.public_key(kid))
        if public_key is not None:
            with self._lock:
                self._public = {**self._public, kid: public_key}
        return public_key

    # ------------------------------------------------------------------
    # Helpers
    def _read_pointer(self) -> Optional[str]:
        raw = self._store.get(self.namespace.key_id())
        return raw.decode() if raw is not None else None

    def _set_active(self, kid: str, private_key: Optional[bytes]) -> None:
        with self._lock:
            current = self._active
            if current is None:
                self._active = (kid, private_key, self._clock())
            elif current[0] == kid:
                self._active = (kid, private_key, current[2])

    def _refresh_active(
        self, seen: Optional[Tuple[str, Optional[bytes], float]], kid: str, now: float
    ) -> None:
        with self._lock:
            if self._active is not seen:
                return
            if seen is not None and seen[0] != kid:
                logger.info(
                    f"Active key of {self.identity.name} moved from {seen[0]} to {kid}"
                )
            private_key = seen[1] if seen is not None and seen[0] == kid else None
            self._active = (kid, private_key, now)

    def _activate(self, pair: KeyPair, retired: Optional[str]) -> None:
        with self._lock:
            self._active = (pair.key_id, pair.private_key, self._clock())
            self._public = {**self._public, pair.key_id: pair.public_key}
            if retired is not None and retired != pair.key_id:
                self._retired = {
                    **self._retired,
                    retired: self._clock() + self.old_key_ttl,
                }
