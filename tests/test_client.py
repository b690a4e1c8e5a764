"""
Tests for Client provider routing and configuration.
"""
import logging

import pytest
from polyllm import Client
from polyllm.providers.anthropic import AnthropicProvider
from polyllm.providers.google import GoogleProvider
from polyllm.providers.ollama import OllamaProvider
from polyllm.providers.openai import MistralProvider, OpenAIProvider, OpenRouterProvider, XAIProvider
from polyllm.testing import MockTransport


def test_client_resolves_openai_by_prefix():
    """Test client routes gpt-* models to OpenAI."""
    client = Client(openai_api_key="sk-test")
    model = client.chat("gpt-4o")

    assert isinstance(model.provider, OpenAIProvider)
    assert model.model_name == "gpt-4o"


def test_client_resolves_anthropic_by_prefix():
    client = Client(anthropic_api_key="sk-ant-test")
    model = client.chat("claude-3-opus")

    assert isinstance(model.provider, AnthropicProvider)
    assert model.model_name == "claude-3-opus"


def test_client_resolves_google_by_prefix():
    client = Client(google_api_key="test-key")
    model = client.chat("gemini-1.5-pro")

    assert isinstance(model.provider, GoogleProvider)
    assert model.provider.headers["x-goog-api-key"] == "test-key"


def test_client_resolves_xai_by_prefix():
    """Test client routes grok-* models to xAI."""
    client = Client(xai_api_key="xai-test")
    model = client.chat("grok-beta")

    assert isinstance(model.provider, XAIProvider)
    assert model.provider.base_url == "https://api.x.ai/v1"
    assert model.provider.headers["Authorization"] == "Bearer xai-test"


def test_client_resolves_mistral_by_prefix():
    client = Client(mistral_api_key="m-test")
    model = client.chat("mistral-large-latest")

    assert isinstance(model.provider, MistralProvider)
    assert model.provider.base_url == "https://api.mistral.ai/v1"


def test_client_explicit_provider_syntax():
    """Test client supports provider:model syntax."""
    client = Client(openai_api_key="sk-test", anthropic_api_key="sk-ant-test", openrouter_api_key="or-test")

    model = client.chat("openai:gpt-4")
    assert isinstance(model.provider, OpenAIProvider)
    assert model.model_name == "gpt-4"

    model = client.chat("anthropic:claude-3-opus")
    assert isinstance(model.provider, AnthropicProvider)
    assert model.model_name == "claude-3-opus"

    model = client.chat("openrouter:meta-llama/llama-3-70b")
    assert isinstance(model.provider, OpenRouterProvider)
    assert model.model_name == "meta-llama/llama-3-70b"


def test_client_ollama_provider(monkeypatch):
    """Test client routes ollama:* to Ollama provider."""
    monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)
    client = Client()
    model = client.chat("ollama:llama3:8b")

    assert isinstance(model.provider, OllamaProvider)
    assert model.model_name == "llama3:8b"
    assert model.provider.base_url == "http://localhost:11434/v1"


def test_client_unknown_model_raises():
    client = Client()
    with pytest.raises(ValueError, match="provider:model_name"):
        client.chat("mystery-model")


def test_client_reads_keys_from_environment(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
    client = Client()
    model = client.chat("claude-3-5-sonnet")

    assert model.provider.headers["x-api-key"] == "env-key"


def test_client_passes_provider_config_to_transport_factory():
    created = {}

    def factory(**kwargs):
        created.update(kwargs)
        return MockTransport(**kwargs)

    client = Client(openai_api_key="sk-test", transport_factory=factory, timeout=12.0)
    model = client.chat("gpt-4o")

    assert created["base_url"] == "https://api.openai.com/v1"
    assert created["headers"]["Authorization"] == "Bearer sk-test"
    assert created["timeout"] == 12.0
    assert isinstance(model.transport, MockTransport)


def test_client_debug_enables_package_logging():
    Client(debug=True)
    assert logging.getLogger("polyllm").level == logging.DEBUG
