"""Value types shared across the key lifecycle, resolver and codec."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ServiceIdentity(BaseModel):
    """Name of the local signer, embedded as ``iss`` in every token it issues."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)


class KeyPair(BaseModel):
    """An RSA key pair generation identified by ``key_id``.

    Both keys are PEM encoded: PKCS8 for the private key and
    SubjectPublicKeyInfo for the public key.
    """

    model_config = ConfigDict(frozen=True)

    key_id: str
    private_key: bytes
    public_key: bytes
    created_at: float


class CachedIssuerKey(BaseModel):
    """Public key of a foreign issuer held in the resolver's in-process cache."""

    model_config = ConfigDict(frozen=True)

    issuer: str
    key_id: str
    public_key: bytes
    fetched_at: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.fetched_at < ttl


class StoreOp(BaseModel):
    """One operation of an atomic ``KeyStore.set_many`` batch.

    ``value=None`` means "apply ``ttl`` to the existing key" (an expire op).
    """

    model_config = ConfigDict(frozen=True)

    key: str
    value: Optional[bytes] = None
    ttl: Optional[float] = None

    @classmethod
    def set(cls, key: str, value: bytes, ttl: Optional[float] = None) -> "StoreOp":
        return cls(key=key, value=value, ttl=ttl)

    @classmethod
    def expire(cls, key: str, ttl: float) -> "StoreOp":
        return cls(key=key, value=None, ttl=ttl)

    @property
    def is_expire(self) -> bool:
        return self.value is None
