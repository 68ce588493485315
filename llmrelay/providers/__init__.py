from typing import Dict

from .base import ChatProviderAdapter
from .openai import OpenAIAdapter
from .anthropic import AnthropicAdapter
from .gemini import GeminiAdapter

_ADAPTERS: Dict[str, ChatProviderAdapter] = {
    "openai": OpenAIAdapter(),
    "anthropic": AnthropicAdapter(),
    "gemini": GeminiAdapter(),
}


def get_adapter(provider: str) -> ChatProviderAdapter:
    """
    Get the wire-format adapter for a provider.

    Raises:
        ValueError: If the provider is not supported.
    """
    try:
        return _ADAPTERS[provider]
    except KeyError:
        raise ValueError(
            f"Unknown provider: {provider}. Use 'openai', 'anthropic' or 'gemini'"
        ) from None


__all__ = ["ChatProviderAdapter", "OpenAIAdapter", "AnthropicAdapter", "GeminiAdapter", "get_adapter"]
