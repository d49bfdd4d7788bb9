"""Carrying tokens in HTTP ``Authorization`` headers."""

from __future__ import annotations

import re
from typing import Callable, Generator, Mapping, Optional

import httpx
import requests
from requests.auth import AuthBase

from .constants import AUTH_HEADER

_TOKEN_SCHEME = re.compile(r'^\s*Token\s+token="([^"]+)"\s*$', re.IGNORECASE)
_BEARER_SCHEME = re.compile(r"^\s*Bearer\s+(\S+)\s*$", re.IGNORECASE)


def format_authorization(token: str) -> str:
    return f'Token token="{token}"'


def extract_token(headers: Mapping[str, str]) -> Optional[str]:
    """Return the token carried in ``headers`` or ``None``.

    Accepts ``Token token="<t>"`` and ``Bearer <t>``; the header name is
    matched case-insensitively.
    """
    value = None
    for name, header in headers.items():
        if name.lower() == AUTH_HEADER.lower():
            value = header
            break
    if not value:
        return None

    for pattern in (_TOKEN_SCHEME, _BEARER_SCHEME):
        match = pattern.match(value)
        if match:
            return match.group(1)
    return None


class TokenAuth(AuthBase):
    """``requests`` auth hook minting a fresh token for every request.

    Sessions are long-lived and tokens expire, so ``mint`` is called lazily
    per request. An ``Authorization`` header already present is left alone.
    """

    def __init__(self, mint: Callable[[], str]) -> None:
        self._mint = mint

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        if AUTH_HEADER not in request.headers:
            request.headers[AUTH_HEADER] = format_authorization(self._mint())
        return request


class HttpxTokenAuth(httpx.Auth):
    """``httpx`` counterpart of :class:`TokenAuth`."""

    def __init__(self, mint: Callable[[], str]) -> None:
        self._mint = mint

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if AUTH_HEADER not in request.headers:
            request.headers[AUTH_HEADER] = format_authorization(self._mint())
        yield request
