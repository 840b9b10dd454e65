"""Environment-driven settings for a ReplyKit deployment."""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from replykit.providers.webhook.config import (
    DEFAULT_CALLBACK_PATH,
    DEFAULT_MAX_CALLBACK_BODY,
    DEFAULT_PORT,
    WebhookConfig,
)


class ReplyKitSettings(BaseSettings):
    """Settings read from ``REPLYKIT_*`` environment variables (and ``.env``).

    ``PORT``, ``LATENODE_CALLBACK_SECRET``, ``RENDER_EXTERNAL_URL`` and
    ``DATABASE_URL`` are accepted as well, matching common hosting defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="REPLYKIT_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    webhook_url: str = "https://webhook.latenode.com/portal/chat"
    callback_url: str | None = None
    public_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPLYKIT_PUBLIC_BASE_URL", "RENDER_EXTERNAL_URL"),
    )
    callback_path: str = DEFAULT_CALLBACK_PATH
    port: int = Field(
        default=DEFAULT_PORT, validation_alias=AliasChoices("REPLYKIT_PORT", "PORT")
    )
    callback_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("REPLYKIT_CALLBACK_SECRET", "LATENODE_CALLBACK_SECRET"),
    )
    health_timeout: float = 5.0
    webhook_timeout: float = 30.0
    max_callback_body: int = DEFAULT_MAX_CALLBACK_BODY

    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("REPLYKIT_DATABASE_URL", "DATABASE_URL"),
    )
    session_header: str = "x-user-email"
    auto_register_users: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    pending_reply_ttl: float | None = None
    log_level: str = "INFO"

    def webhook_config(self) -> WebhookConfig:
        return WebhookConfig(
            webhook_url=self.webhook_url,
            callback_url=self.callback_url,
            public_base_url=self.public_base_url,
            callback_path=self.callback_path,
            port=self.port,
            callback_secret=self.callback_secret,
            health_timeout=self.health_timeout,
            webhook_timeout=self.webhook_timeout,
            max_callback_body=self.max_callback_body,
        )


@lru_cache
def get_settings() -> ReplyKitSettings:
    return ReplyKitSettings()
