"""Single entry point tying key lifecycle, resolution and codec together."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .codec import Claims, Header, TokenCodec
from .config import TokenManagerConfig, load_config
from .errors import UnknownKey
from .keys import KeyLifecycle
from .models import KeyPair, ServiceIdentity
from .resolver import IssuerKeyResolver
from .stores import KeyStore, get_store


class TokenManager:
    """Issues and verifies tokens on behalf of one service.

    The store and HTTP client are injected; when omitted, the store is built
    from ``config.store_url`` and a fresh ``requests.Session`` is used for
    fetching foreign public keys.

    Example:
        manager = TokenManager(TokenManagerConfig(service_name="a", token_ttl=60))
        token = manager.encode({"aud": "b", "foo": "bar"})
    """

    def __init__(
        self,
        config: TokenManagerConfig,
        store: Optional[KeyStore] = None,
        http: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.identity = ServiceIdentity(name=config.require_service_name())
        self.store = store if store is not None else get_store(config=config)
        self.lifecycle = KeyLifecycle(
            self.store,
            self.identity,
            old_key_ttl=config.old_key_ttl,
            key_id_refresh=config.key_id_refresh,
            key_size=config.key_size,
            key_prefix=config.key_prefix,
            clock=clock,
        )
        self.resolver = IssuerKeyResolver(
            self.lifecycle,
            self.store,
            config.trusted_issuers,
            public_key_ttl=config.public_key_ttl,
            fetch_timeout=config.fetch_timeout,
            fetch_retries=config.fetch_retries,
            http=http,
            clock=clock,
        )
        self.codec = TokenCodec(
            self.lifecycle,
            self.resolver,
            token_ttl=config.token_ttl,
            leeway=config.leeway,
            clock=clock,
        )

    @classmethod
    def from_config(cls, path: Optional[str] = None, **kwargs: Any) -> "TokenManager":
        """Build a manager from a YAML config file (see :func:`load_config`)."""
        return cls(load_config(path), **kwargs)

    @property
    def service_name(self) -> str:
        return self.identity.name

    @property
    def key_id(self) -> str:
        return self.lifecycle.active_key_id()

    # ------------------------------------------------------------------
    def encode(self, claims: Mapping[str, Any], token_ttl: Optional[int] = None) -> str:
        return self.codec.encode(claims, token_ttl=token_ttl)

    def decode(self, token: str) -> Tuple[Claims, Header]:
        return self.codec.decode(token)

    def resolve(self, issuer: str, kid: str) -> bytes:
        return self.resolver.resolve(issuer, kid)

    # ------------------------------------------------------------------
    def generate(self, expire_current: bool = False) -> KeyPair:
        return self.lifecycle.generate(expire_current=expire_current)

    def rotate(self) -> KeyPair:
        return self.lifecycle.rotate()

    def public_key(self, kid: Optional[str] = None) -> Optional[bytes]:
        return self.lifecycle.public_key(kid)

    def public_key_document(self, kid: Optional[str] = None) -> Dict[str, str]:
        """Body served by this service's public-key resolution endpoint."""
        kid = kid or self.key_id
        public_key = self.lifecycle.public_key(kid)
        if public_key is None:
            raise UnknownKey(self.service_name, kid)
        return {"public_key": public_key.decode()}

    def close(self) -> None:
        self.resolver.close()
        self.store.close()
