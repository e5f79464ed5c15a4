"""Caller-facing clients for the Ollama chat client."""

from ollama_chat.client.async_client import AsyncClientOptions, AsyncOllamaChatClient
from ollama_chat.client.sync import ClientOptions, OllamaChatClient

__all__ = [
    "AsyncClientOptions",
    "AsyncOllamaChatClient",
    "ClientOptions",
    "OllamaChatClient",
]
