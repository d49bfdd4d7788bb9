"""Tests for carrying tokens in request headers."""

import httpx
import pytest
import requests

from token_manager.carrier import HttpxTokenAuth, TokenAuth, extract_token


@pytest.mark.parametrize(
    "headers, expected",
    [
        ({"Authorization": 'Token token="abc.def.ghi"'}, "abc.def.ghi"),
        ({"authorization": "Bearer abc.def.ghi"}, "abc.def.ghi"),
        ({"AUTHORIZATION": '  token TOKEN="x.y.z" '}, "x.y.z"),
        ({"Authorization": "Basic dXNlcjpwYXNz"}, None),
        ({"Authorization": ""}, None),
        ({"X-Other": "Bearer nope"}, None),
        ({}, None),
    ],
)
def test_extract_token(headers, expected):
    assert extract_token(headers) == expected


def test_requests_auth_mints_per_request():
    minted = iter(["t1", "t2"])
    auth = TokenAuth(lambda: next(minted))

    first = requests.Request("GET", "http://svc/a", auth=auth).prepare()
    second = requests.Request("GET", "http://svc/b", auth=auth).prepare()

    assert first.headers["Authorization"] == 'Token token="t1"'
    assert second.headers["Authorization"] == 'Token token="t2"'
    assert extract_token(first.headers) == "t1"


def test_requests_auth_keeps_existing_header():
    calls = []
    auth = TokenAuth(lambda: calls.append(1) or "minted")
    request = requests.Request(
        "GET", "http://svc/a", headers={"Authorization": "Bearer preset"}, auth=auth
    ).prepare()
    assert request.headers["Authorization"] == "Bearer preset"
    assert calls == []


def test_httpx_auth_sets_header():
    seen = []

    def handler(request):
        seen.append(request.headers.get("Authorization"))
        return httpx.Response(200)

    client = httpx.Client(transport=httpx.MockTransport(handler), auth=HttpxTokenAuth(lambda: "tok"))
    client.get("http://svc/a")
    client.get("http://svc/b", headers={"Authorization": "Bearer preset"})

    assert seen == ['Token token="tok"', "Bearer preset"]
