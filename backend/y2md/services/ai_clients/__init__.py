"""
AI Clients package for LLM formatting providers.

This package provides a unified interface for the supported providers:
- OllamaClient: Local Ollama (default, no credential)
- OpenAIClient: OpenAI chat completions
- ClaudeClient: Anthropic Messages API
- CustomClient: Any OpenAI-compatible endpoint

Usage:
    from y2md.services.ai_clients import CLIENT_CLASSES, AIClientConfig

    client_cls = CLIENT_CLASSES[ProviderIdentity.OPENAI]
    async with client_cls(AIClientConfig(base_url, model, api_key)) as client:
        text = await client.chat(messages)
"""

from y2md.models.schemas import ProviderIdentity
from y2md.services.ai_clients.base import (
    FORMATTING_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
    AIClientConfig,
    AIClientConnectionError,
    AIClientPayloadError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClient,
    ProviderRequest,
)
from y2md.services.ai_clients.claude_client import ClaudeClient
from y2md.services.ai_clients.ollama_client import OllamaClient
from y2md.services.ai_clients.openai_client import CustomClient, OpenAIClient

CLIENT_CLASSES: dict[ProviderIdentity, type[BaseAIClient]] = {
    ProviderIdentity.LOCAL: OllamaClient,
    ProviderIdentity.OPENAI: OpenAIClient,
    ProviderIdentity.ANTHROPIC: ClaudeClient,
    ProviderIdentity.CUSTOM: CustomClient,
}

__all__ = [
    # Base classes and constants
    "BaseAIClient",
    "AIClientConfig",
    "ProviderRequest",
    "CLIENT_CLASSES",
    "LLM_TIMEOUT_SECONDS",
    "FORMATTING_TEMPERATURE",
    # Errors
    "AIClientTimeoutError",
    "AIClientConnectionError",
    "AIClientResponseError",
    "AIClientPayloadError",
    # Implementations
    "OllamaClient",
    "OpenAIClient",
    "ClaudeClient",
    "CustomClient",
]
