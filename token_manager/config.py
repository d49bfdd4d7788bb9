from __future__ import annotations

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_KEY_ID_REFRESH,
    DEFAULT_KEY_PREFIX,
    DEFAULT_KEY_SIZE,
    DEFAULT_OLD_KEY_TTL,
    DEFAULT_PUBLIC_KEY_TTL,
    MIN_KEY_SIZE,
)
from .errors import ConfigError


class RedisConfig(BaseModel):
    """Connection settings used when ``store_url`` does not carry them."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TrustedIssuer(BaseModel):
    """An issuer whose tokens are accepted, and where to fetch its keys.

    ``url`` may be omitted only for the local service itself.
    """

    url: Optional[str] = None


class TokenManagerConfig(BaseModel):
    """Top-level configuration model."""

    service_name: Optional[str] = None
    trusted_issuers: Dict[str, TrustedIssuer] = Field(default_factory=dict)
    token_ttl: Optional[int] = None
    public_key_ttl: int = DEFAULT_PUBLIC_KEY_TTL
    old_key_ttl: int = DEFAULT_OLD_KEY_TTL
    key_id_refresh: int = DEFAULT_KEY_ID_REFRESH
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    fetch_retries: int = 0
    leeway: int = 0
    key_size: int = DEFAULT_KEY_SIZE
    key_prefix: str = DEFAULT_KEY_PREFIX
    store_url: str = "memory://"
    redis: RedisConfig = RedisConfig()

    @field_validator("token_ttl", "public_key_ttl", "old_key_ttl", "key_id_refresh")
    @classmethod
    def _positive_ttl(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("TTL must be positive")
        return value

    @field_validator("fetch_timeout")
    @classmethod
    def _bounded_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("fetch_timeout must be positive")
        return value

    @field_validator("key_size")
    @classmethod
    def _strong_key(cls, value: int) -> int:
        if value < MIN_KEY_SIZE:
            raise ValueError(f"key_size must be at least {MIN_KEY_SIZE}")
        return value

    def require_service_name(self) -> str:
        if not self.service_name or not self.service_name.strip():
            raise ConfigError("`service_name` is required")
        return self.service_name


def load_config(path: Optional[str] = None) -> TokenManagerConfig:
    """Load configuration from a YAML file.

    Args:
        path: Optional path to config file. Falls back to TOKEN_MANAGER_CONFIG
            env variable or 'token_manager.yaml' in the current directory.

    ``TOKEN_MANAGER_SERVICE_NAME`` and ``TOKEN_MANAGER_STORE_URL`` override
    the corresponding file settings.
    """

    config_path = path or os.getenv("TOKEN_MANAGER_CONFIG", "token_manager.yaml")
    data: dict = {}
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    try:
        config = TokenManagerConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration in {config_path}: {e}") from e

    env_service = os.getenv("TOKEN_MANAGER_SERVICE_NAME")
    if env_service:
        config.service_name = env_service
    env_store = os.getenv("TOKEN_MANAGER_STORE_URL")
    if env_store:
        config.store_url = env_store
    return config
