"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for EquitySight happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan reads it once and injects the values into each component, so
      services never reach for ambient process state themselves.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. auth_salt -> AUTH_SALT). Type coercion and validation are built in.

Security notes:
  AUTH_SALT unset falls back to a well-known default so existing password
  digests keep verifying. The fallback is insecure and logged as a warning on
  every startup.

  Missing Upstash credentials do not stop the process. The REST store raises
  UpstreamError on every call instead, so requests fail closed.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or store/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("equitysight.config")

DEFAULT_AUTH_SALT = "propCalcSalt2024_v2"

# 30 days
DEFAULT_TOKEN_TTL = 60 * 60 * 24 * 30


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False

    # ------------------------------------------------------------------
    # Backing store
    # ------------------------------------------------------------------

    store_backend: Literal["upstash", "sql"] = "upstash"
    upstash_redis_rest_url: str = ""
    upstash_redis_rest_token: str = ""
    store_timeout_seconds: float = 10.0
    store_db_url: str = "sqlite:///equitysight_kv.db"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; see the validator.
    auth_salt: str = ""
    token_ttl_seconds: int = DEFAULT_TOKEN_TTL

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_allow_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("upstash_redis_rest_url", "upstash_redis_rest_token", mode="before")
    @classmethod
    def strip_quotes(cls, value):
        """Drop surrounding quotes that dashboard-pasted env values often carry."""
        if isinstance(value, str):
            return value.strip().strip("\"'").strip()
        return value

    @model_validator(mode="after")
    def apply_salt_fallback(self) -> "Settings":
        if not self.auth_salt:
            self.auth_salt = DEFAULT_AUTH_SALT
            logger.warning(
                "WARNING: AUTH_SALT is not set -- using the built-in default. "
                "Password digests are only as secret as this source file."
            )
        if self.token_ttl_seconds <= 0:
            raise ValueError("TOKEN_TTL_SECONDS must be positive.")
        return self

    @property
    def upstash_configured(self) -> bool:
        return bool(self.upstash_redis_rest_url and self.upstash_redis_rest_token)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
