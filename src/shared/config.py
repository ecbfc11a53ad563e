"""Configuration management for wpmcp.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for the life of the process.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_RESOURCE_TYPES = ["posts", "pages", "categories", "tags", "users", "media", "comments"]


class ServerSettings(BaseSettings):
    """Protocol server configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8001)

    # Security
    api_key: str = Field(default="", description="Shared secret for clients and consent signing")
    require_auth: bool = Field(default=True)
    rate_limit_rpm: int = Field(default=120, ge=0, description="Requests per minute per client, 0 disables")

    # Consent
    require_consent: bool = Field(default=True)
    single_use_consent: bool = Field(default=True)
    consent_ttl_seconds: int = Field(default=300, gt=0)
    enable_consent_audit: bool = Field(default=True)
    consent_log_path: str = Field(default="logs/consent.log")

    # Persisted state; in-memory when unset
    state_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="WPMCP_SERVER_",
        env_file=".env",
        extra="ignore"
    )


class ResourceSettings(BaseSettings):
    """Resource addressing configuration."""
    scheme: str = Field(default="wp", pattern=r"^[a-z][a-z0-9+.-]*$")
    allowed_types: list[str] = Field(
        default_factory=lambda: [t for t in DEFAULT_RESOURCE_TYPES if t != "users"]
    )

    model_config = SettingsConfigDict(
        env_prefix="WPMCP_RESOURCES_",
        env_file=".env",
        extra="ignore"
    )


class ContentSettings(BaseSettings):
    """Content store backend configuration."""
    backend: Literal["memory", "rest"] = Field(default="memory")
    base_url: Optional[str] = Field(default=None, description="Site root, e.g. https://example.com")
    username: Optional[str] = None
    application_password: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    verify_ssl: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="WPMCP_CONTENT_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    server: ServerSettings = Field(default_factory=ServerSettings)
    resources: ResourceSettings = Field(default_factory=ResourceSettings)
    content: ContentSettings = Field(default_factory=ContentSettings)

    model_config = SettingsConfigDict(
        env_prefix="WPMCP_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings
    ):
        # Environment variables win over values loaded from the YAML file
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls(**load_yaml_config(path))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file; a missing file yields an empty mapping."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("WPMCP_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
