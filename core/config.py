"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Cornerstone happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. SECRET_KEY and DATABASE_URL are both
      required; a missing value is a startup failure, never a runtime one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] There is no auto-generated fallback key. A random per-process key
       would silently log every user out on restart and would differ between
       workers, so the process refuses to start instead.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, audit/, or catalog/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("cornerstone.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `database_url` from DATABASE_URL.
    List fields are read as JSON arrays (GATED_PATHS='["/dashboard/:path*"]').
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
    # Empty string is the sentinel for "not configured". The model_validator
    # below raises on either, so callers never see "".
    secret_key: str = ""
    database_url: str = ""

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # 30 days, refreshed on every login.
    token_expire_seconds: int = 30 * 24 * 60 * 60
    # Path patterns the edge gate protects. Everything else (public pages,
    # static assets, the /api surface) relies on the server-side guard only.
    gated_paths: list[str] = ["/dashboard/:path*"]
    # Feature names switched off for every role (guard.require_feature).
    disabled_features: list[str] = []

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    # Bounded queue between the guard and the audit writer thread. When the
    # database is down the oldest pending entries are dropped first.
    audit_queue_size: int = 1000

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Refuse to start without SECRET_KEY or DATABASE_URL [M7].

        Also rejects keys shorter than 32 characters [M6] and a non-positive
        audit queue size (the queue must be able to hold at least one entry).
        """
        if not self.secret_key:
            raise ValueError("SECRET_KEY is required. Set SECRET_KEY in your environment or .env file.")
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if not self.database_url:
            raise ValueError("DATABASE_URL is required. Set DATABASE_URL in your environment or .env file.")
        if self.audit_queue_size < 1:
            raise ValueError("AUDIT_QUEUE_SIZE must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
