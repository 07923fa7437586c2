"""
wacrm/config.py
Application configuration
Environment-driven (Render / Supabase compatible)

Required:
  - DATABASE_URL

Optional:
  - WHATSAPP_VERIFY_TOKEN   Meta webhook verification secret
  - WEBHOOK_SECRET          shared secret expected in X-Webhook-Secret
  - SEND_API_KEY            shared secret expected in X-Api-Key on /messages/send
  - META_WA_API_VERSION     Graph API version (defaults to v17.0)
  - OUTBOUND_MODE           "live" or "dry_run"
  - HTTP_TIMEOUT_SECONDS    timeout for provider HTTP calls
  - DEBUG_SAMPLE_CHARS      content sample length stored by the debug sink
  - LOG_LEVEL
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

DEFAULT_VERIFY_TOKEN = "sendsales_verify_token"


def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(f"{name} is not set")
    return value


def _optional_env(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    database_url: str
    verify_token: str = DEFAULT_VERIFY_TOKEN
    webhook_secret: str | None = None
    send_api_key: str | None = None
    meta_api_version: str = "v17.0"
    outbound_mode: str = "live"
    http_timeout_seconds: float = 30.0
    debug_sample_chars: int = 200
    log_level: str = "INFO"

    @property
    def outbound_dry_run(self) -> bool:
        return self.outbound_mode == "dry_run"


def load_settings() -> Settings:
    return Settings(
        database_url=_require_env("DATABASE_URL"),
        verify_token=_optional_env("WHATSAPP_VERIFY_TOKEN") or DEFAULT_VERIFY_TOKEN,
        webhook_secret=_optional_env("WEBHOOK_SECRET"),
        send_api_key=_optional_env("SEND_API_KEY"),
        meta_api_version=_optional_env("META_WA_API_VERSION") or "v17.0",
        outbound_mode=(_optional_env("OUTBOUND_MODE") or "live").lower(),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
        debug_sample_chars=int(os.getenv("DEBUG_SAMPLE_CHARS", "200")),
        log_level=(_optional_env("LOG_LEVEL") or "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """FastAPI dependency. Settings are read once per process."""
    return load_settings()
