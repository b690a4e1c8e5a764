from .anthropic import AnthropicProvider
from .base import STRUCTURED_TOOL, Provider, drop_none, normalize_finish_reason
from .google import GoogleProvider
from .ollama import OllamaProvider
from .openai import MistralProvider, OpenAIProvider, OpenRouterProvider, XAIProvider

__all__ = [
    "STRUCTURED_TOOL",
    "AnthropicProvider",
    "GoogleProvider",
    "MistralProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "Provider",
    "XAIProvider",
    "drop_none",
    "normalize_finish_reason",
]
