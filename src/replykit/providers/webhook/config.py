"""Automation webhook provider configuration."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import BaseModel, Field, SecretStr, field_validator

DEFAULT_CALLBACK_PATH = "/api/chat/webhook/callback"
DEFAULT_PORT = 3001
DEFAULT_MAX_CALLBACK_BODY = 2 * 1024 * 1024


class WebhookConfig(BaseModel):
    """Configuration for the outbound automation webhook and its callback.

    Attributes:
        webhook_url: Fixed external endpoint every chat turn is POSTed to.
        callback_url: Explicit callback URL; wins over everything else.
        public_base_url: Public origin of this instance; the callback URL is
            derived from it plus ``callback_path`` when no override is set.
        callback_path: Route the callback is mounted on.
        port: Local port this instance listens on, used for the loopback
            fallback probe and the hardcoded default callback URL.
        callback_secret: Shared secret inbound callbacks must present.
        health_timeout: Timeout for each callback health probe, in seconds.
        webhook_timeout: Timeout for the outbound webhook POST, in seconds.
        max_callback_body: Largest accepted callback body, in bytes.
        headers: Extra headers sent with every outbound POST.
    """

    webhook_url: str
    callback_url: str | None = None
    public_base_url: str | None = None
    callback_path: str = DEFAULT_CALLBACK_PATH
    port: int = Field(default=DEFAULT_PORT, gt=0, lt=65536)
    callback_secret: SecretStr | None = None
    health_timeout: float = Field(default=5.0, gt=0.0)
    webhook_timeout: float = Field(default=30.0, gt=0.0)
    max_callback_body: int = Field(default=DEFAULT_MAX_CALLBACK_BODY, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str) -> str:
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError("webhook_url must be an http(s) URL with a host")
        return v

    @field_validator("callback_path")
    @classmethod
    def validate_callback_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("callback_path must start with '/'")
        return v

    @field_validator("callback_url", "public_base_url")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @property
    def secret_value(self) -> str | None:
        if self.callback_secret is None:
            return None
        return self.callback_secret.get_secret_value() or None
