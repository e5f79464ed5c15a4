"""Core configuration for the Ollama chat client."""

from ollama_chat.core.config import (
    ClientConfig,
    ImageConfig,
    LoggingConfig,
    OllamaConfig,
    Settings,
    settings,
)

__all__ = [
    "ClientConfig",
    "ImageConfig",
    "LoggingConfig",
    "OllamaConfig",
    "Settings",
    "settings",
]
