"""Encoding and verification of RS256 service tokens."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import jwt

from .constants import ALGORITHM, REQUIRED_CLAIMS
from .errors import (
    ClaimValidationError,
    InvalidSignature,
    MalformedToken,
    MissingAudience,
    MissingExpiry,
    UnknownIssuer,
)
from .keys import KeyLifecycle
from .resolver import IssuerKeyResolver

logger = logging.getLogger(__name__)

Claims = Dict[str, Any]
Header = Dict[str, Any]

_TIME_CLAIMS = ("exp", "iat", "nbf")


def _audience_matches(aud: Any, name: str) -> bool:
    if isinstance(aud, str):
        return aud == name
    if isinstance(aud, (list, tuple)):
        return name in aud
    return False


class TokenCodec:
    """Signs claim sets with the local active key and verifies foreign tokens.

    Verification never trusts the token's contents before the issuer has been
    checked against the trusted set, and always checks the signature with a
    key obtained from :class:`IssuerKeyResolver`.
    """

    def __init__(
        self,
        lifecycle: KeyLifecycle,
        resolver: IssuerKeyResolver,
        token_ttl: Optional[int] = None,
        leeway: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lifecycle = lifecycle
        self._resolver = resolver
        self.token_ttl = token_ttl
        self.leeway = leeway
        self._clock = clock

    @property
    def service_name(self) -> str:
        return self._lifecycle.identity.name

    def encode(self, claims: Mapping[str, Any], token_ttl: Optional[int] = None) -> str:
        """Return a signed token for ``claims``.

        ``aud`` is mandatory. ``exp`` is kept when supplied, otherwise derived
        from the TTL; without either the call fails. ``iss`` is always set to
        the local service name.
        """
        if claims.get("aud") is None:
            raise MissingAudience()

        ttl = token_ttl if token_ttl is not None else self.token_ttl
        payload = dict(claims)
        if payload.get("exp") is None:
            if ttl is None:
                raise MissingExpiry()
            payload["exp"] = int(self._clock()) + int(ttl)
        payload["iss"] = self.service_name

        kid, private_key = self._lifecycle.active_key()
        return jwt.encode(payload, private_key, algorithm=ALGORITHM, headers={"kid": kid})

    def decode(self, token: str) -> Tuple[Claims, Header]:
        """Verify ``token`` and return its ``(claims, header)``."""
        header, unverified = self._parse(token)

        for claim in REQUIRED_CLAIMS:
            if claim not in unverified:
                raise ClaimValidationError(claim, "claim is required")

        for claim in _TIME_CLAIMS:
            value = unverified.get(claim)
            if claim in unverified and (
                isinstance(value, bool) or not isinstance(value, (int, float))
            ):
                raise ClaimValidationError(claim, "must be a numeric timestamp")

        issuer = unverified["iss"]
        if not self._resolver.is_trusted(issuer):
            logger.warning(f"Rejected token from untrusted issuer {issuer!r}")
            raise UnknownIssuer(issuer)

        if not _audience_matches(unverified["aud"], self.service_name):
            raise ClaimValidationError(
                "aud", f"token is not intended for {self.service_name!r}"
            )

        public_key = self._resolver.resolve(issuer, header["kid"])
        claims = self._verify(token, public_key, issuer)
        return claims, header

    # ------------------------------------------------------------------
    def _parse(self, token: str) -> Tuple[Header, Claims]:
        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise MalformedToken(f"cannot parse token: {e}") from e

        alg = header.get("alg")
        if alg != ALGORITHM:
            raise ClaimValidationError("alg", f"unsupported algorithm {alg!r}")
        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise MalformedToken("token header has no `kid`")
        return header, unverified

    def _verify(self, token: str, public_key: bytes, issuer: str) -> Claims:
        try:
            return jwt.decode(
                token,
                public_key,
                algorithms=[ALGORITHM],
                audience=self.service_name,
                issuer=issuer,
                leeway=self.leeway,
                # sub and jti are opaque application claims here
                options={
                    "require": list(REQUIRED_CLAIMS),
                    "verify_sub": False,
                    "verify_jti": False,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignature(str(e)) from e
        except jwt.ExpiredSignatureError as e:
            raise ClaimValidationError("exp", "token has expired") from e
        except jwt.InvalidAudienceError as e:
            raise ClaimValidationError("aud", str(e)) from e
        except jwt.InvalidIssuerError as e:
            raise ClaimValidationError("iss", str(e)) from e
        except jwt.MissingRequiredClaimError as e:
            raise ClaimValidationError(e.claim, "claim is required") from e
        except jwt.ImmatureSignatureError as e:
            raise ClaimValidationError("nbf", str(e)) from e
        except jwt.InvalidIssuedAtError as e:
            raise ClaimValidationError("iat", str(e)) from e
        except jwt.InvalidAlgorithmError as e:
            raise ClaimValidationError("alg", str(e)) from e
        except jwt.PyJWTError as e:
            raise MalformedToken(str(e)) from e
