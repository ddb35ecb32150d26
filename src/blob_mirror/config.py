"""Runtime configuration for the webhook receiver, mirror bot and store."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field


class RedisConfig(BaseModel):
    """Connection settings for the Redis content store."""

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    db: int = Field(default=0, description="Redis logical database")
    password: str | None = Field(default=None, description="Redis password")
    max_retries: int = Field(default=3, description="Attempts per store command")
    retry_base_delay: float = Field(default=0.5, description="Backoff base in seconds")


class DiscordConfig(BaseModel):
    """Discord bot credentials."""

    token: str = Field(default="", description="Bot token")
    client_id: int | None = Field(default=None, description="Application client ID")
    api_base: str = Field(default="https://discord.com/api/v10", description="REST API base URL")


class GitHubConfig(BaseModel):
    """GitHub App webhook and API settings."""

    webhook_secret: str | None = Field(default=None, description="Webhook secret for HMAC validation")
    token: str | None = Field(default=None, description="API token for higher rate limits")
    api_base: str = Field(default="https://api.github.com", description="REST API base URL")
    raw_base: str = Field(
        default="https://raw.githubusercontent.com",
        description="Base URL for raw file contents",
    )
    user_agent: str = Field(default="blob-mirror/v0.1", description="User-Agent header")


class MirrorConfig(BaseModel):
    """Top-level configuration shared by both processes."""

    # Webhook receiver
    webhook_host: str = Field(default="0.0.0.0", description="Bind address for webhook server")
    webhook_port: int = Field(default=8000, description="Port for webhook server")

    # Chunking
    message_max_length: int = Field(default=2000, description="Maximum characters per chat message")
    max_messages: int | None = Field(default=None, description="Cap on messages per mirror (None = unlimited)")

    # Per-target exclusion
    lock_ttl_ms: int = Field(default=30_000, description="Lease duration of a target lock")
    lock_timeout: float = Field(default=60.0, description="Seconds to wait for a target lock")
    lock_poll_interval: float = Field(default=0.1, description="Seconds between lock attempts")

    # Retries
    gateway_retries: int = Field(default=3, description="Attempts per chat call on transient errors")
    gateway_retry_base_delay: float = Field(default=1.0, description="Backoff base for chat calls")
    sync_retries: int = Field(default=2, description="Retries of a partially failed reconciliation")
    reverse_index_retries: int = Field(default=5, description="Attempts to make a reverse entry match")

    redis: RedisConfig = Field(default_factory=RedisConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)

    @classmethod
    def from_toml(cls, path: Path) -> MirrorConfig:
        """Load configuration from a TOML file (``secret.toml`` in deployment)."""
        with path.open("rb") as f:
            data = tomllib.load(f)
        return cls.model_validate(data)


def load_config(path: Path | None = None) -> MirrorConfig:
    """Load configuration from *path*, ``$BLOB_MIRROR_CONFIG`` or ``secret.toml``.

    Falls back to defaults when the file does not exist.
    """
    path = path or Path(os.environ.get("BLOB_MIRROR_CONFIG", "secret.toml"))
    if not path.exists():
        return MirrorConfig()
    return MirrorConfig.from_toml(path)


# Default configuration
MIRROR_CONFIG = MirrorConfig()
