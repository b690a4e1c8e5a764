import logging
import os
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv

from .models.chat import ChatModel
from .providers.anthropic import AnthropicProvider
from .providers.base import Provider
from .providers.google import GoogleProvider
from .providers.ollama import OllamaProvider
from .providers.openai import MistralProvider, OpenAIProvider, OpenRouterProvider, XAIProvider
from .transport.http import HTTPTransport

logger = logging.getLogger("polyllm.client")

# model-name prefix -> provider, for names given without "provider:"
_PREFIXES = (
    (("gpt", "o1", "o3", "o4", "chatgpt"), "openai"),
    (("grok",), "xai"),
    (("claude",), "anthropic"),
    (("gemini",), "google"),
    (("mistral", "codestral", "pixtral", "magistral"), "mistral"),
)


class Client:
    """
    Entry point: resolves a model name to a provider and hands back a ChatModel.

    API keys come from the constructor or the environment (a .env file is
    loaded on construction): OPENAI_API_KEY, ANTHROPIC_API_KEY,
    GEMINI_API_KEY, XAI_API_KEY, OPENROUTER_API_KEY, MISTRAL_API_KEY.
    """
    def __init__(self,
                 openai_api_key: Optional[str] = None,
                 anthropic_api_key: Optional[str] = None,
                 google_api_key: Optional[str] = None,
                 xai_api_key: Optional[str] = None,
                 openrouter_api_key: Optional[str] = None,
                 mistral_api_key: Optional[str] = None,
                 ollama_base_url: Optional[str] = None,
                 transport_factory: Optional[Callable[..., Any]] = None,
                 timeout: Optional[float] = None,
                 debug: bool = False):
        load_dotenv()

        self.keys = {
            "openai": openai_api_key or os.getenv("OPENAI_API_KEY"),
            "anthropic": anthropic_api_key or os.getenv("ANTHROPIC_API_KEY"),
            "google": google_api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            "xai": xai_api_key or os.getenv("XAI_API_KEY"),
            "openrouter": openrouter_api_key or os.getenv("OPENROUTER_API_KEY"),
            "mistral": mistral_api_key or os.getenv("MISTRAL_API_KEY"),
        }
        self.ollama_base_url = ollama_base_url or os.getenv("OLLAMA_BASE_URL")
        self.transport_factory = transport_factory or HTTPTransport
        self.timeout = timeout

        if debug:
            logging.basicConfig(
                level=logging.DEBUG,
                format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            logging.getLogger("polyllm").setLevel(logging.DEBUG)

    def provider(self, name: str) -> Provider:
        """Provider instance for a provider name, configured with this client's keys."""
        if name == "openai":
            return OpenAIProvider(api_key=self.keys["openai"])
        if name == "anthropic":
            return AnthropicProvider(api_key=self.keys["anthropic"])
        if name in ("google", "gemini"):
            return GoogleProvider(api_key=self.keys["google"])
        if name == "xai":
            return XAIProvider(api_key=self.keys["xai"])
        if name == "openrouter":
            return OpenRouterProvider(api_key=self.keys["openrouter"])
        if name == "mistral":
            return MistralProvider(api_key=self.keys["mistral"])
        if name == "ollama":
            return OllamaProvider(base_url=self.ollama_base_url)
        raise ValueError(f"Unknown provider '{name}'")

    def _get_provider(self, model: str) -> Tuple[Provider, str]:
        # explicit provider:model syntax
        if ":" in model:
            prefix, real_model = model.split(":", 1)
            try:
                return self.provider(prefix), real_model
            except ValueError:
                # ollama tags like "llama3:8b" fall through to prefix matching
                pass

        for prefixes, name in _PREFIXES:
            if model.startswith(prefixes):
                return self.provider(name), model

        raise ValueError(f"Unknown model provider for {model}. Try using 'provider:model_name' syntax (e.g. 'ollama:llama3').")

    def chat(self, model_name: str) -> ChatModel:
        provider, real_model_name = self._get_provider(model_name)
        logger.debug(f"Routing {model_name} to {provider.name} ({provider.base_url})")
        kwargs: Dict[str, Any] = {"base_url": provider.base_url, "headers": provider.headers}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        transport = self.transport_factory(**kwargs)
        return ChatModel(real_model_name, provider, transport)
