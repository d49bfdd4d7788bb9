"""Shared fixtures: a controllable clock and a fake key-resolution endpoint."""

import json
import time

import pytest

from token_manager import TokenManager, TokenManagerConfig, TrustedIssuer
from token_manager.stores import InMemoryKeyStore


class FakeClock:
    def __init__(self, now: float | None = None) -> None:
        self.now = time.time() if now is None else now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Resp:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self._text = text

    def json(self):
        if self._text is not None:
            return json.loads(self._text)
        return self._body


class FakeHttp:
    """Routes ``GET url?kid=...`` to the public key document of a manager."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def serve(self, url, manager):
        self.routes[url] = manager

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {}), timeout))
        route = self.routes.get(url)
        if route is None:
            return Resp(404, {"error": "not found"})
        if callable(route) and not isinstance(route, TokenManager):
            return route(params)
        kid = (params or {}).get("kid")
        public_key = route.public_key(kid)
        if public_key is None:
            return Resp(404, {"error": "unknown kid"})
        return Resp(200, {"public_key": public_key.decode()})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def shared_store(clock):
    return InMemoryKeyStore(clock=clock)


@pytest.fixture
def make_manager(clock, http):
    """Factory building managers that share the fake clock and HTTP client."""

    def _make(service_name, store=None, trusted=None, **options):
        config = TokenManagerConfig(
            service_name=service_name,
            trusted_issuers={
                name: TrustedIssuer(url=url) for name, url in (trusted or {}).items()
            },
            **options,
        )
        return TokenManager(
            config,
            store=store if store is not None else InMemoryKeyStore(clock=clock),
            http=http,
            clock=clock,
        )

    return _make


@pytest.fixture
def response():
    """Builder for canned resolution endpoint responses."""
    return Resp
