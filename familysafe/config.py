"""
Application Configuration.

Pydantic Settings model for the FamilySafe access-control core and proxy
gateway.  All configuration is loaded from environment variables and .env
files.  Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

from familysafe.errors import ConfigError


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Identity provider ---
    # The project identifier doubles as the expected token audience.
    PROJECT_ID: str = ""
    TOKEN_ISSUER_BASE: str = "https://securetoken.google.com"

    # --- Local document store ---
    SQLITE_PATH: str = "familysafe_local.db"
    TRANSACTION_MAX_ATTEMPTS: int = Field(default=5, ge=1)

    # --- Family invites ---
    INVITE_CODE_LENGTH: int = Field(default=6, ge=1)
    INVITE_CODE_ALPHABET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
    INVITE_TTL_HOURS: int = Field(default=48, ge=1)

    # --- Proxy gateway ---
    PROXY_USER_AGENT: str = "OpenFamilySafe/1.0"
    PROXY_ACCEPT: str = (
        "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    )
    UPSTREAM_TIMEOUT_S: float = 30.0
    DEFAULT_FILTER_LEVEL_HEADER: str = "strict"
    ENFORCE_PROFILE_POLICY: bool = False
    GATEWAY_HOST: str = "0.0.0.0"
    GATEWAY_PORT: int = 8787

    CORS_HEADERS: dict[str, str] = Field(default_factory=lambda: {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, HEAD, POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Filter-Level",
    })

    # --- Logging ---
    LOG_FILE: str = "familysafe.log"  # empty string disables the file handler
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        A missing project identifier is not fatal at startup: the gateway
        answers every proxied request with a 500 configuration error
        instead, so the misconfiguration is visible to operators.
        """
        _log = logging.getLogger("familysafe.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found: all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.PROJECT_ID:
            _log.warning(
                "PROJECT_ID is empty: the proxy gateway will reject every "
                "request with a configuration error."
            )

        return self

    def expected_issuer(self) -> str:
        """Return the token issuer string built from ``PROJECT_ID``.

        Raises:
            ConfigError: If ``PROJECT_ID`` is not configured.
        """
        if not self.PROJECT_ID:
            raise ConfigError("PROJECT_ID must be set")
        return f"{self.TOKEN_ISSUER_BASE.rstrip('/')}/{self.PROJECT_ID}"


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern to avoid the lock overhead on the
    fast path while remaining thread-safe during first initialisation.

    Prefer direct constructor injection of ``AppConfig``; this factory
    exists for the entry point and the logger's defaults.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
