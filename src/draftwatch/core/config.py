"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class StorageSettings(BaseModel):
    """Settings for the local document store."""

    db_path: Path = Field(
        default=Path("./draftwatch.db"), description="SQLite database path"
    )


class LlmSettings(BaseModel):
    """Settings for the text-generation provider."""

    provider: Literal["gemini", "ollama"] = Field(
        default="gemini", description="Backend used for reply and todo generation"
    )
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com",
        description="Provider base URL",
    )
    model: str = Field(default="gemini-1.5-pro", description="Model identifier")
    api_key: str | None = Field(
        default=None, description="API key for hosted providers"
    )
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for reply drafting",
    )
    max_output_tokens: int | None = Field(
        default=1024,
        ge=32,
        description="Maximum tokens to request from the provider",
    )
    max_attempts: int = Field(
        default=1, ge=1, le=5, description="Attempts per LLM request"
    )


class GmailSettings(BaseModel):
    """OAuth client settings for the Gmail mailbox API."""

    client_id: str | None = Field(default=None, description="OAuth client id")
    client_secret: str | None = Field(
        default=None, description="OAuth client secret"
    )
    token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Token endpoint used when refreshing access tokens",
    )
    query: str = Field(default="is:unread", description="Message list query")
    timeout_seconds: int = Field(
        default=30, description="Socket timeout for Gmail API calls"
    )


class ImapSettings(BaseModel):
    """Settings shared by all IMAP accounts."""

    mailbox: str = Field(default="INBOX", description="Mailbox to monitor")
    timeout_seconds: int = Field(
        default=30, description="Socket timeout for IMAP connections"
    )


class MonitorSettings(BaseModel):
    """Settings controlling tick cadence and bounds."""

    tick_seconds: float = Field(
        default=300.0, gt=0, description="Seconds between scheduler ticks"
    )
    page_size: int = Field(
        default=50, ge=1, description="Messages fetched per account check"
    )
    max_workers: int = Field(
        default=4, ge=1, description="Accounts checked in parallel per tick"
    )
    status_limit: int = Field(
        default=10, ge=1, description="Records returned by processing status"
    )
    recent_window_minutes: int = Field(
        default=60,
        ge=0,
        description="Terminal records newer than this are reported as recent",
    )
    autostart: bool = Field(
        default=False, description="Start the scheduler with the web app"
    )


class DraftingSettings(BaseModel):
    """Default reply context used when per-client context is missing."""

    tone: str = Field(default="professional")
    template: str = Field(default="default")
    signature: str = Field(default="Your Name")
    client_name: str = Field(default="Client")


class PushSettings(BaseModel):
    """Settings for the push delivery relay."""

    endpoint_url: str | None = Field(
        default=None, description="Relay endpoint accepting multicast payloads"
    )
    api_key: str | None = Field(default=None, description="Relay bearer token")
    apns_topic: str | None = Field(default=None, description="APNs bundle topic")
    timeout_seconds: int = Field(default=10, description="Delivery timeout")
    default_title: str = Field(default="Draftwatch")


class SecuritySettings(BaseModel):
    """Secrets used to protect stored credentials."""

    encryption_key: str | None = Field(
        default=None, description="Fernet key for IMAP passwords at rest"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle structured log formatting"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    gmail: GmailSettings = Field(default_factory=GmailSettings)
    imap: ImapSettings = Field(default_factory=ImapSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    drafting: DraftingSettings = Field(default_factory=DraftingSettings)
    push: PushSettings = Field(default_factory=PushSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "DRAFTWATCH_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, str] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            continue
        if isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(
        env_file, include_environment=include_environment
    )
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "DraftingSettings",
    "GmailSettings",
    "ImapSettings",
    "LlmSettings",
    "LoggingSettings",
    "MonitorSettings",
    "PushSettings",
    "SecuritySettings",
    "StorageSettings",
    "load_app_settings",
]
