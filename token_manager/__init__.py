"""token_manager: signed service-to-service tokens with rotating RSA keys."""

from .carrier import HttpxTokenAuth, TokenAuth, extract_token
from .codec import TokenCodec
from .config import TokenManagerConfig, TrustedIssuer, load_config
from .errors import (
    ClaimError,
    ClaimValidationError,
    ConfigError,
    InvalidSignature,
    KeyFetchFailed,
    MalformedToken,
    MissingAudience,
    MissingExpiry,
    StoreUnavailable,
    TokenManagerError,
    UnknownIssuer,
    UnknownKey,
    VerificationError,
)
from .keys import KeyLifecycle
from .manager import TokenManager
from .models import CachedIssuerKey, KeyPair, ServiceIdentity
from .resolver import IssuerKeyResolver
from .stores import get_store

__version__ = "0.1.0"
__all__ = [
    "CachedIssuerKey",
    "ClaimError",
    "ClaimValidationError",
    "ConfigError",
    "HttpxTokenAuth",
    "InvalidSignature",
    "IssuerKeyResolver",
    "KeyFetchFailed",
    "KeyLifecycle",
    "KeyPair",
    "MalformedToken",
    "MissingAudience",
    "MissingExpiry",
    "ServiceIdentity",
    "StoreUnavailable",
    "TokenAuth",
    "TokenCodec",
    "TokenManager",
    "TokenManagerConfig",
    "TokenManagerError",
    "TrustedIssuer",
    "UnknownIssuer",
    "UnknownKey",
    "VerificationError",
    "extract_token",
    "get_store",
    "load_config",
]
