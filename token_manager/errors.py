"""Exception hierarchy for token issuing and verification."""

from __future__ import annotations

from typing import Optional


class TokenManagerError(Exception):
    """Base class for all token manager errors."""


class ConfigError(TokenManagerError):
    """Required configuration is missing or invalid."""


class StoreUnavailable(TokenManagerError):
    """The key store could not be reached or failed mid-operation.

    Treated as transient. Callers must never interpret this as "no key".
    """


class ClaimError(TokenManagerError):
    """A claim set passed to ``encode`` is incomplete."""


class MissingAudience(ClaimError):
    def __init__(self) -> None:
        super().__init__("`aud` is required")


class MissingExpiry(ClaimError):
    def __init__(self) -> None:
        super().__init__("`exp` is required when no token TTL is configured")


class KeyFetchFailed(TokenManagerError):
    """Fetching a public key from an issuer's endpoint failed.

    Safe to retry. Failed fetches are never cached.
    """

    def __init__(
        self, url: Optional[str], status: Optional[int] = None, reason: str = ""
    ) -> None:
        self.url = url
        self.status = status
        self.reason = reason
        message = f"failed to fetch public key from {url}"
        if status is not None:
            message += f" (status {status})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class VerificationError(TokenManagerError):
    """A token failed verification. Retrying cannot change the outcome."""


class MalformedToken(VerificationError):
    """The token could not be parsed."""


class UnknownIssuer(VerificationError):
    """The token names an issuer outside the trusted set."""

    def __init__(self, issuer: object) -> None:
        self.issuer = issuer
        super().__init__(f"untrusted issuer: {issuer!r}")


class UnknownKey(VerificationError):
    """No public key exists for the requested key id."""

    def __init__(self, issuer: str, key_id: str) -> None:
        self.issuer = issuer
        self.key_id = key_id
        super().__init__(f"no public key for issuer {issuer!r} kid {key_id!r}")


class InvalidSignature(VerificationError):
    """The signature does not match the resolved public key."""


class ClaimValidationError(VerificationError):
    """A specific claim (or the algorithm header) failed validation."""

    def __init__(self, claim: str, message: str) -> None:
        self.claim = claim
        super().__init__(f"{claim}: {message}")
