"""Pydantic configuration schema for Networking Hub.

This module defines the configuration schema that mirrors config.yaml
structure. Configuration is validated against these models on startup.

Usage:
    from networking_hub.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

# Keyword list used by the heuristic classifier when config gives none
DEFAULT_NETWORKING_KEYWORDS = [
    "job",
    "career",
    "opportunity",
    "position",
    "hiring",
    "interview",
    "network",
    "connect",
    "linkedin",
    "meeting",
    "coffee",
    "chat",
    "mentor",
    "advice",
    "industry",
    "conference",
    "event",
    "speak",
    "partnership",
    "collaborate",
    "business",
    "startup",
    "company",
]


class AppInfoConfig(BaseModel):
    """Application identity returned by /api/config and /health."""

    name: str = Field(default="Networking Hub", description="Display name")
    version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development",
        description="Deployment environment",
    )


class AuthConfig(BaseModel):
    """Google OAuth client configuration."""

    client_id: str = Field(default="", description="Google OAuth client ID")
    client_secret: str = Field(
        default="",
        description="Google OAuth client secret (prefer the GOOGLE_CLIENT_SECRET env var)",
    )
    token_url: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Google OAuth token endpoint",
    )
    redirect_path: str = Field(
        default="/oauth/callback",
        description="Path Google redirects to after consent",
    )
    token_expiry_skew_seconds: int = Field(
        default=60,
        ge=0,
        le=600,
        description="Treat access tokens as expired this many seconds early",
    )


class DatabaseConfig(BaseModel):
    """SQLite database configuration."""

    path: str = Field(default="data/networking.db", description="SQLite database file")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure database path is not empty and doesn't contain traversal."""
        if not v or not v.strip():
            raise ValueError("Database path cannot be empty")
        if ".." in v:
            raise ValueError("Database path cannot contain '..' (path traversal)")
        return v


class SyncConfig(BaseModel):
    """Mail fetch windows and limits."""

    manual_window_hours: float = Field(
        default=168.0,
        gt=0,
        le=24 * 90,
        description="Trailing window for user-initiated syncs (hours)",
    )
    webhook_window_minutes: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Trailing window for push-triggered re-fetches (minutes)",
    )
    max_results: int = Field(
        default=100,
        ge=1,
        le=500,
        description="Max messages listed per fetch",
    )
    list_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Days of stored mail returned by GET /api/emails",
    )
    requests_per_second: float = Field(
        default=10.0,
        gt=0,
        le=50,
        description="Client-side Gmail API rate limit",
    )

    @model_validator(mode="after")
    def webhook_window_is_narrower(self) -> "SyncConfig":
        """The push re-fetch window must stay strictly narrower than manual sync."""
        if self.webhook_window_minutes >= self.manual_window_hours * 60:
            raise ValueError(
                "webhook_window_minutes must be smaller than manual_window_hours "
                "(push re-fetches are meant to be narrow)"
            )
        return self


class PushConfig(BaseModel):
    """Gmail push notification configuration."""

    project_id: str = Field(default="", description="Google Cloud project ID")
    topic_name: str = Field(
        default="gmail-push-notifications",
        description="Pub/Sub topic Gmail publishes to",
    )
    label_ids: list[str] = Field(default=["INBOX"], description="Labels to watch")
    setup_cooldown_minutes: int = Field(
        default=60,
        ge=1,
        le=7 * 24 * 60,
        description="Minimum interval between watch setups for one user",
    )
    dedup_capacity: int = Field(
        default=100,
        ge=1,
        le=100_000,
        description="How many recent notification fingerprints to remember",
    )
    renew_watch_on_push: bool = Field(
        default=True,
        description="Renew the Gmail watch from the webhook (subject to the cooldown)",
    )
    webhook_base_url: str = Field(
        default="",
        description="Public base URL the Pub/Sub push subscription targets",
    )
    provision_pubsub: bool = Field(
        default=False,
        description="Create the Pub/Sub topic and push subscription before users.watch",
    )
    subscription_name: str = Field(
        default="gmail-push-subscription",
        description="Pub/Sub push subscription delivering to the webhook",
    )

    @property
    def topic_path(self) -> str:
        """Fully-qualified Pub/Sub topic name for users.watch."""
        return f"projects/{self.project_id}/topics/{self.topic_name}"

    @property
    def subscription_path(self) -> str:
        """Fully-qualified Pub/Sub subscription name."""
        return f"projects/{self.project_id}/subscriptions/{self.subscription_name}"


class ClassifierConfig(BaseModel):
    """Networking classifier configuration."""

    enabled: bool = Field(
        default=True,
        description="Use Claude when an API key is available (heuristic otherwise)",
    )
    model: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model for networking classification",
    )
    max_tokens: int = Field(default=512, ge=64, le=4096)
    max_messages_per_thread: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Newest messages of a conversation sent to the model",
    )
    keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NETWORKING_KEYWORDS),
        description="Heuristic keywords (case-insensitive substring match)",
    )

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        """Lowercase keywords and drop blanks."""
        return [k.strip().lower() for k in v if k and k.strip()]


class AppConfig(BaseModel):
    """Root configuration schema for Networking Hub.

    Every section has defaults, so an empty file is valid. Secrets are
    normally supplied through environment variables (see config.py).
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )
    app: AppInfoConfig = Field(default_factory=AppInfoConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    push: PushConfig = Field(default_factory=PushConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
