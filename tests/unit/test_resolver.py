"""Issuer public key resolution and caching tests."""

from unittest.mock import MagicMock

import pytest
import requests

from token_manager import TokenManager, TokenManagerConfig
from token_manager.errors import KeyFetchFailed, UnknownIssuer, UnknownKey
from token_manager.stores import InMemoryKeyStore

ORDERS_URL = "https://orders.internal/keys"


@pytest.fixture
def orders(make_manager):
    return make_manager("orders", token_ttl=60)


@pytest.fixture
def billing(make_manager, shared_store, http, orders):
    http.serve(ORDERS_URL, orders)
    return make_manager(
        "billing",
        store=shared_store,
        trusted={"orders": ORDERS_URL},
        fetch_timeout=2.5,
    )


def test_local_issuer_reads_own_store(billing, http):
    kid = billing.key_id
    assert billing.resolve("billing", kid) == billing.public_key(kid)
    assert http.calls == []


def test_local_issuer_unknown_kid(billing):
    with pytest.raises(UnknownKey):
        billing.resolve("billing", "missing")


def test_untrusted_issuer_is_rejected_without_fetch(billing, http):
    with pytest.raises(UnknownIssuer):
        billing.resolve("intruder", "k1")
    assert http.calls == []


def test_fetches_once_within_freshness_window(billing, orders, http, clock, shared_store):
    kid = orders.key_id

    first = billing.resolve("orders", kid)
    second = billing.resolve("orders", kid)

    assert first == second == orders.public_key(kid)
    assert http.calls == [(ORDERS_URL, {"kid": kid}, 2.5)]
    assert shared_store.get(f"tm:billing:issuer_public_key:orders:{kid}") == first


def test_refetches_after_freshness_window(billing, orders, http, clock):
    kid = orders.key_id
    billing.resolve("orders", kid)

    clock.advance(24 * 60 * 60)
    billing.resolve("orders", kid)

    assert len(http.calls) == 2


def test_second_process_uses_shared_store(billing, orders, http, make_manager, shared_store):
    kid = orders.key_id
    billing.resolve("orders", kid)

    replica = make_manager("billing", store=shared_store, trusted={"orders": ORDERS_URL})
    assert replica.resolve("orders", kid) == orders.public_key(kid)
    assert len(http.calls) == 1


def test_failed_fetch_is_not_cached(billing, orders, http, response):
    kid = orders.key_id
    http.serve(ORDERS_URL, lambda params: response(503, {"error": "unavailable"}))

    with pytest.raises(KeyFetchFailed) as exc_info:
        billing.resolve("orders", kid)
    assert exc_info.value.url == ORDERS_URL
    assert exc_info.value.status == 503

    http.serve(ORDERS_URL, orders)
    assert billing.resolve("orders", kid) == orders.public_key(kid)
    assert len(http.calls) == 2


@pytest.mark.parametrize(
    "body, text",
    [
        (None, "<html>oops</html>"),
        ({"other": "field"}, None),
        (["public_key"], None),
        ({"public_key": "not a pem"}, None),
        ({"public_key": ""}, None),
    ],
)
def test_malformed_responses_fail(billing, http, response, body, text):
    http.serve(ORDERS_URL, lambda params: response(200, body, text))
    with pytest.raises(KeyFetchFailed):
        billing.resolve("orders", "k1")


def test_transport_errors_fail(billing, http):
    def boom(params):
        raise requests.ConnectTimeout("timed out")

    http.serve(ORDERS_URL, boom)
    with pytest.raises(KeyFetchFailed) as exc_info:
        billing.resolve("orders", "k1")
    assert exc_info.value.status is None


def test_trusted_issuer_without_url_cannot_fetch(make_manager, http):
    billing = make_manager("billing", trusted={"orders": None})
    with pytest.raises(KeyFetchFailed):
        billing.resolve("orders", "k1")
    assert http.calls == []


def test_fetch_retries_with_backoff(make_manager, orders, http, monkeypatch, response):
    sleeps = []
    monkeypatch.setattr("token_manager.resolver.sleep_backoff", sleeps.append)
    responses = [response(502, {}), response(502, {})]

    def flaky(params):
        if responses:
            return responses.pop()
        return response(200, {"public_key": orders.public_key(params["kid"]).decode()})

    http.serve(ORDERS_URL, flaky)
    billing = make_manager("billing", trusted={"orders": ORDERS_URL}, fetch_retries=2)

    assert billing.resolve("orders", orders.key_id) == orders.public_key()
    assert sleeps == [0, 1]


def test_store_hit_keeps_original_fetch_time(
    make_manager, orders, http, clock, shared_store
):
    http.serve(ORDERS_URL, orders)
    kid = orders.key_id
    billing = make_manager(
        "billing", store=shared_store, trusted={"orders": ORDERS_URL}, public_key_ttl=100
    )
    billing.resolve("orders", kid)

    clock.advance(99)
    replica = make_manager(
        "billing", store=shared_store, trusted={"orders": ORDERS_URL}, public_key_ttl=100
    )
    replica.resolve("orders", kid)
    assert len(http.calls) == 1

    clock.advance(2)
    replica.resolve("orders", kid)
    assert len(http.calls) == 2


def test_close_only_closes_own_session(monkeypatch):
    session = MagicMock()
    monkeypatch.setattr("token_manager.resolver.requests.Session", lambda: session)
    owned = TokenManager(TokenManagerConfig(service_name="billing"), store=InMemoryKeyStore())
    owned.close()
    session.close.assert_called_once()

    injected = MagicMock()
    shared = TokenManager(
        TokenManagerConfig(service_name="billing"), store=InMemoryKeyStore(), http=injected
    )
    shared.close()
    injected.close.assert_not_called()
