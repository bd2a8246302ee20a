"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Wulang configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")
    chat_temperature: float = Field(default=0.7)
    analysis_temperature: float = Field(default=0.3)
    max_tokens: int = Field(default=4096)

    # WhatsApp Cloud API
    whatsapp_access_token: str = Field(default="")
    whatsapp_phone_number_id: str = Field(default="")
    whatsapp_verify_token: str = Field(default="")
    whatsapp_api_version: str = Field(default="v21.0")

    # Database
    database_path: Path = Field(default=Path("data/wulang.db"))

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Bot behaviour
    bot_name: str = Field(default="Wulang")
    trigger_keyword: str = Field(default="wulang")
    reset_keyword: str = Field(default="!reset")

    # Conversation
    max_context_messages: int = Field(default=10, gt=0)

    # Attachments
    max_attachment_size_mb: int = Field(default=10, gt=0)
    pending_attachment_ttl_hours: int = Field(default=24, gt=0)
    defer_uncaptioned_attachments: bool = Field(default=True)

    # Moderation
    moderation_enabled: bool = Field(default=False)
    moderation_exact_match: bool = Field(default=False)

    # Maintenance
    retention_days: int = Field(default=90, gt=0)
    maintenance_interval_hours: int = Field(default=24, gt=0)
    pending_sweep_interval_minutes: int = Field(default=60, gt=0)

    # Webhooks
    webhook_port: int = Field(default=8443)

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

    @property
    def whatsapp_enabled(self) -> bool:
        """True when outbound WhatsApp credentials are configured."""
        return bool(self.whatsapp_access_token and self.whatsapp_phone_number_id)


settings = Settings()
