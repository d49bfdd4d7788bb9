"""Resolution of verification keys for trusted issuers."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import requests
from cryptography.exceptions import UnsupportedAlgorithm

from .config import TrustedIssuer
from .constants import DEFAULT_FETCH_TIMEOUT, DEFAULT_PUBLIC_KEY_TTL
from .errors import KeyFetchFailed, UnknownIssuer, UnknownKey
from .keys import KeyLifecycle, load_public_key
from .models import CachedIssuerKey
from .stores.base import KeyStore
from .utils.retry import sleep_backoff

logger = logging.getLogger(__name__)


class IssuerKeyResolver:
    """Returns the public key an issuer used for a given ``kid``.

    Lookup order for a foreign issuer: in-process map, shared store, then the
    issuer's resolution endpoint. Every tier honours ``public_key_ttl``.
    Concurrent misses for the same key may each fetch; failed fetches are
    never cached.
    """

    def __init__(
        self,
        lifecycle: KeyLifecycle,
        store: KeyStore,
        trusted_issuers: Mapping[str, TrustedIssuer],
        public_key_ttl: float = DEFAULT_PUBLIC_KEY_TTL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        fetch_retries: int = 0,
        http: Optional[Any] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lifecycle = lifecycle
        self._store = store
        self._trusted = dict(trusted_issuers)
        self.public_key_ttl = public_key_ttl
        self.fetch_timeout = fetch_timeout
        self.fetch_retries = fetch_retries
        self._owns_http = http is None
        self._http = http if http is not None else requests.Session()
        self._clock = clock
        self._lock = threading.Lock()
        self._cache: Dict[Tuple[str, str], CachedIssuerKey] = {}

    @property
    def local_name(self) -> str:
        return self._lifecycle.identity.name

    def is_trusted(self, issuer: Any) -> bool:
        return isinstance(issuer, str) and issuer in self._trusted

    def resolve(self, issuer: str, kid: str) -> bytes:
        """Return the PEM public key of ``issuer`` for ``kid``."""
        if issuer == self.local_name:
            public_key = self._lifecycle.public_key(kid)
            if public_key is None:
                raise UnknownKey(issuer, kid)
            return public_key

        if not self.is_trusted(issuer):
            logger.warning(f"Rejected key lookup for untrusted issuer {issuer!r}")
            raise UnknownIssuer(issuer)

        now = self._clock()
        cached = self._cache.get((issuer, kid))
        if cached is not None and cached.is_fresh(now, self.public_key_ttl):
            return cached.public_key

        store_key = self._lifecycle.namespace.issuer_public_key(issuer, kid)
        public_key = self._store.get(store_key)
        if public_key is not None:
            logger.debug(f"Loaded public key {issuer}/{kid} from store")
            remaining = self._store.ttl(store_key)
            if remaining is not None:
                # the store entry was written when the key was fetched
                fetched_at = now - max(0.0, self.public_key_ttl - remaining)
                self._remember(issuer, kid, public_key, fetched_at)
            return public_key

        public_key = self._fetch_with_retry(issuer, kid)
        self._store.set(store_key, public_key, ttl=self.public_key_ttl)
        self._remember(issuer, kid, public_key, self._clock())
        return public_key

    def close(self) -> None:
        """Close the HTTP session if this resolver created it."""
        if self._owns_http:
            self._http.close()

    # ------------------------------------------------------------------
    def _remember(self, issuer: str, kid: str, public_key: bytes, now: float) -> None:
        entry = CachedIssuerKey(
            issuer=issuer, key_id=kid, public_key=public_key, fetched_at=now
        )
        with self._lock:
            self._cache = {**self._cache, (issuer, kid): entry}

    def _fetch_with_retry(self, issuer: str, kid: str) -> bytes:
        attempt = 0
        while True:
            try:
                return self._fetch(issuer, kid)
            except KeyFetchFailed as e:
                if attempt >= self.fetch_retries:
                    raise
                logger.warning(f"{e}; retrying ({attempt + 1}/{self.fetch_retries})")
                sleep_backoff(attempt)
                attempt += 1

    def _fetch(self, issuer: str, kid: str) -> bytes:
        url = self._trusted[issuer].url
        if not url:
            raise KeyFetchFailed(url, reason=f"no resolution endpoint for {issuer!r}")

        logger.debug(f"Fetching public key {issuer}/{kid} from {url}")
        try:
            response = self._http.get(url, params={"kid": kid}, timeout=self.fetch_timeout)
        except requests.RequestException as e:
            raise KeyFetchFailed(url, reason=str(e)) from e

        status = response.status_code
        if not 200 <= status < 300:
            raise KeyFetchFailed(url, status, "unexpected status")

        try:
            body = response.json()
        except ValueError as e:
            raise KeyFetchFailed(url, status, "response is not JSON") from e

        public_key = body.get("public_key") if isinstance(body, dict) else None
        if not isinstance(public_key, str) or not public_key:
            raise KeyFetchFailed(url, status, "response has no `public_key`")

        pem = public_key.encode()
        try:
            load_public_key(pem)
        except (ValueError, UnsupportedAlgorithm) as e:
            raise KeyFetchFailed(url, status, f"invalid public key: {e}") from e
        return pem
