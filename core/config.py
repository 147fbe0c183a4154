"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TaskHub happen here. No module should call
os.getenv() or os.environ.get() directly.

Design patterns used:
  Explicit settings object: Settings is built once at process start (by the
      HTTP adapter via get_settings(), or by tests directly) and passed by
      reference into TokenService, IdentityService and the AuthorizationEngine.
      The core never reads configuration from a module-level global.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. refresh_secret_key -> REFRESH_SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Implements the DEBUG-conditional secret policy: dev mode
      generates keys with a warning, production mode refuses to start.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected outright.
  [M7] In production mode a missing secret is a hard startup failure.
  [T1] The access and refresh secrets must differ so a leaked access-token
       secret cannot mint refresh tokens.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
tasks/, or audit/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("taskhub.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'taskhub.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings(debug=True) can be instantiated in
    test environments without a real .env file.
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
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The validator below
    # either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    refresh_secret_key: str = ""
    access_token_expire_seconds: int = Field(default=900, gt=0)
    refresh_token_expire_seconds: int = Field(default=7 * 24 * 3600, gt=0)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # 12 rounds keeps a single verification comfortably above 50ms on
    # current hardware. Tests drop to 4.
    bcrypt_rounds: int = Field(default=12, ge=4, le=16)
    temp_password_length: int = Field(default=16, ge=12, le=128)

    # ------------------------------------------------------------------
    # Authorization policy
    # ------------------------------------------------------------------

    member_task_visibility: Literal["own", "organization"] = "own"
    member_task_deletion: Literal["own", "none"] = "own"

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    audit_page_size: int = Field(default=100, gt=0, le=1000)

    # ------------------------------------------------------------------
    # HTTP adapter
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    cors_origins: list[str] = ["http://localhost:4200"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy for both signing keys [M6][M7][T1]."""
        for field_name in ("secret_key", "refresh_secret_key"):
            value = getattr(self, field_name)
            env_name = field_name.upper()
            if not value:
                if self.debug:
                    setattr(self, field_name, secrets.token_hex(32))
                    logger.warning(
                        "WARNING: Using auto-generated %s. Sessions will not persist across restarts.",
                        env_name,
                    )
                else:
                    raise ValueError(
                        f"{env_name} is required in production mode. "
                        f"Set {env_name} in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            elif len(value) < 32:
                raise ValueError(f"{env_name} must be at least 32 characters.")
        if self.secret_key == self.refresh_secret_key:
            raise ValueError("SECRET_KEY and REFRESH_SECRET_KEY must be different.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings instance.

    Only the HTTP adapter calls this, once, at startup. Everything below the
    adapter receives the Settings object as a constructor argument.

    In tests: construct Settings(...) directly instead.
    """
    return Settings()
