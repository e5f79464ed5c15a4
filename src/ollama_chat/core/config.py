"""Centralized configuration for the Ollama chat client.

This module provides a single source of truth for configuration values,
using pydantic-settings for environment variable loading and validation.

Design Principles:
    - Environment Variables: All settings can be overridden via environment variables
    - Sensible Defaults: Works against a local Ollama without any configuration
    - Validation: Pydantic validates all values at load time
    - Singleton Pattern: Cached settings instance via lru_cache

Configuration Sections:
    - OllamaConfig: Where the Ollama service lives
    - ClientConfig: HTTP client timeouts and connection pooling
    - ImageConfig: Image fetching limits and URL cache
    - LoggingConfig: Where structured request logs are written

Environment Variable Prefixes:
    - OLLAMA_*: Ollama service settings
    - CLIENT_*: HTTP client settings
    - IMAGE_*: Image resolution settings
    - OLLAMA_CHAT_*: Logging settings

Usage:
    from ollama_chat.core.config import settings

    base_url = settings.ollama.url
    timeout = settings.client.timeout
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OllamaConfig(BaseSettings):
    """Ollama service location.

    Attributes:
        host: Ollama service hostname. Default: "localhost".
        port: Ollama service port. Range: [1, 65535]. Default: 11434.
        base_url: Full base URL (overrides host/port if set). Must start with
            http:// or https://.
    """

    model_config = SettingsConfigDict(
        env_prefix="OLLAMA_",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Ollama service host")
    port: int = Field(default=11434, ge=1, le=65535, description="Ollama service port")
    base_url: str | None = Field(default=None, description="Full base URL (overrides host/port)")

    @property
    def url(self) -> str:
        """Base URL of the service, without a trailing slash."""
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"http://{self.host}:{self.port}"

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        if v and not v.startswith(("http://", "https://")):
            msg = "base_url must start with http:// or https://"
            raise ValueError(msg)
        return v


class ClientConfig(BaseSettings):
    """HTTP client configuration shared by the sync and async clients."""

    model_config = SettingsConfigDict(
        env_prefix="CLIENT_",
        case_sensitive=False,
        extra="ignore",
    )

    timeout: int = Field(default=300, ge=1, le=3600, description="Request timeout (seconds)")
    pool_connections: int = Field(
        default=10, ge=1, le=1000, description="Connection pools kept by requests"
    )
    pool_maxsize: int = Field(
        default=20, ge=1, le=1000, description="Max connections per requests pool"
    )
    max_connections: int = Field(
        default=50, ge=1, le=1000, description="Max httpx connections"
    )
    max_keepalive_connections: int = Field(
        default=20, ge=1, le=500, description="Max httpx keep-alive connections"
    )
    default_model: str = Field(default="llama3.2", min_length=1, description="Fallback model name")
    verbose: bool = Field(default=False, description="Verbose logging")


class ImageConfig(BaseSettings):
    """Image resolution configuration."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    fetch_timeout: float = Field(
        default=30.0, gt=0, le=600, description="Remote image fetch timeout (seconds)"
    )
    max_size_bytes: int = Field(
        default=20 * 1024 * 1024, ge=1, description="Largest accepted image (bytes)"
    )
    cache_size: int = Field(default=100, ge=1, le=10000, description="Max cached remote images")
    cache_ttl_seconds: float = Field(
        default=3600.0, ge=1.0, le=86400.0, description="Remote image cache TTL (seconds)"
    )


class LoggingConfig(BaseSettings):
    """Structured logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OLLAMA_CHAT_",
        case_sensitive=False,
        extra="ignore",
    )

    log_dir: Path = Field(default=Path("logs"), description="Directory for requests.jsonl")


class Settings(BaseSettings):
    """Root settings class containing all configuration sections.

    Configuration is loaded from:
        1. Environment variables (with the section prefixes)
        2. .env file (if present in the working directory)
        3. Default values

    Note:
        Settings are loaded once and cached. Tests that change environment
        variables construct the section classes directly instead.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ollama: OllamaConfig = Field(default_factory=OllamaConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    @lru_cache(maxsize=1)
    def get_settings(cls) -> Settings:
        """Get the cached settings instance."""
        return cls()


# Global settings instance
settings = Settings.get_settings()

__all__ = [
    "ClientConfig",
    "ImageConfig",
    "LoggingConfig",
    "OllamaConfig",
    "Settings",
    "settings",
]
