"""
Backend adapters.

Importing this package registers every built-in adapter kind:
- openai: OpenAI and any OpenAI-compatible endpoint (OpenRouter, NanoGPT, ...)
- anthropic: Anthropic Messages API
- ollama: Ollama native chat API over httpx
"""

from switchboard.llm.backends.base import (
    BACKEND_IMPLEMENTATIONS,
    BackendClient,
    TurnResult,
    get_registered_kinds,
    register_backend,
)
from switchboard.llm.backends.anthropic_messages import AnthropicBackend
from switchboard.llm.backends.ollama import OllamaBackend
from switchboard.llm.backends.openai_compatible import OpenAICompatibleBackend

__all__ = [
    "BACKEND_IMPLEMENTATIONS",
    "BackendClient",
    "TurnResult",
    "get_registered_kinds",
    "register_backend",
    "AnthropicBackend",
    "OllamaBackend",
    "OpenAICompatibleBackend",
]
