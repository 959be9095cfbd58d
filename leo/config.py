"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 24h / 17 posts keeps us under the X free-tier daily write limit.
_DEFAULT_POST_INTERVAL_MS = (24 * 60 * 60 * 1000) // 17


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Leo configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-haiku-4-5-20251001")
    chat_max_tokens: int = Field(default=200)
    post_max_tokens: int = Field(default=100)
    context_window_size: int = Field(default=10)

    # HTTP
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    cors_origin: str = Field(default="*")

    # Persistence — MongoDB when MONGODB_URI is set, JSON file otherwise
    mongodb_uri: str = Field(default="")
    mongodb_database: str = Field(default="leo")
    mongodb_timeout_ms: int = Field(default=5000)
    conversations_file: Path = Field(default=Path("data/conversations.json"))
    save_debounce_seconds: float = Field(default=1.0)
    max_sessions: int = Field(default=100)

    # X (Twitter)
    x_api_key: str = Field(default="")
    x_api_secret: str = Field(default="")
    x_access_token: str = Field(default="")
    x_access_token_secret: str = Field(default="")
    post_interval_ms: int = Field(default=_DEFAULT_POST_INTERVAL_MS)
    post_max_length: int = Field(default=200)
    recent_context_minutes: int = Field(default=5)
    recent_context_messages: int = Field(default=5)
    recent_preview_chars: int = Field(default=80)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def x_credentials_configured(self) -> bool:
        """True when all four X OAuth 1.0a credentials are present."""
        return all(
            (
                self.x_api_key,
                self.x_api_secret,
                self.x_access_token,
                self.x_access_token_secret,
            )
        )


settings = Settings()
