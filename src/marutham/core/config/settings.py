"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Marutham Care dashboard configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; binding elsewhere needs MARUTHAM_ALLOW_INSECURE_BIND.
    marutham_host: str = "127.0.0.1"
    marutham_port: int = 8001
    marutham_log_level: str = "info"
    marutham_allow_insecure_bind: bool = False

    # Browser session (signed cookie). An empty secret gets a random one per process.
    session_secret: str = ""
    session_max_age_seconds: int = 8 * 3600
    session_https_only: bool = False

    # Google OAuth (sign-in and Gmail send share one OAuth client)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://127.0.0.1:8001/auth/callback"
    google_refresh_token: str = ""

    # Gmail sender mailbox
    gmail_sender_email: str = ""
    gmail_sender_name: str = "Marutham Care"
    gmail_transport_retries: int = 3

    # Summary LLM
    llm_provider: Literal["gemini", "anthropic", "openai", "mock"] = "gemini"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"

    # Record store
    store_backend: Literal["sqlite", "rest"] = "sqlite"
    database_url: str = ""
    database_key: str = ""
    db_path: str = "~/.marutham/dashboard.db"
    encryption_key: str = ""

    # Sensor feed proxied by /api/lifi
    lifi_feed_url: str = "http://127.0.0.1:8080/data"
    lifi_polling: bool = True
    lifi_poll_interval_ms: int = 5000  # 1000, 5000, 10000 or 30000

    # Outbound HTTP
    http_timeout_seconds: float = 15.0

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
