from polyllm.providers.anthropic import AnthropicProvider
from polyllm.providers.google import GoogleProvider
from polyllm.providers.openai import OpenAIProvider
from polyllm.types import Usage


def test_openai_parsing():
    provider = OpenAIProvider(api_key="mock_key")

    response_data = {
        "choices": [{"message": {"content": "Hello"}, "finish_reason": "stop"}],
        "usage": {
            "prompt_tokens": 100,
            "completion_tokens": 50,
            "total_tokens": 150,
            "prompt_tokens_details": {
                "cached_tokens": 25
            }
        }
    }

    usage = provider.map_response(response_data).usage

    assert usage.prompt_tokens == 100
    assert usage.completion_tokens == 50
    assert usage.total_tokens == 150
    assert usage.cache_read_input_tokens == 25


def test_google_parsing():
    provider = GoogleProvider(api_key="mock_key")

    response_data = {
        "candidates": [{"content": {"parts": [{"text": "Hello"}]}}],
        "usageMetadata": {
            "promptTokenCount": 100,
            "candidatesTokenCount": 50,
            "totalTokenCount": 150,
            "cachedContentTokenCount": 30
        }
    }

    usage = provider.map_response(response_data).usage

    assert usage.prompt_tokens == 100
    assert usage.completion_tokens == 50
    assert usage.total_tokens == 150
    assert usage.cache_read_input_tokens == 30


def test_anthropic_parsing_defaults_total():
    provider = AnthropicProvider(api_key="mock_key")

    response_data = {
        "content": [{"type": "text", "text": "Hello"}],
        "stop_reason": "end_turn",
        "usage": {
            "input_tokens": 40,
            "output_tokens": 10,
            "cache_creation_input_tokens": 7,
            "cache_read_input_tokens": 3,
        },
    }

    usage = provider.map_response(response_data).usage

    assert usage.prompt_tokens == 40
    assert usage.completion_tokens == 10
    assert usage.total_tokens == 50
    assert usage.cache_creation_input_tokens == 7
    assert usage.cache_read_input_tokens == 3


def test_usage_total_defaults_to_sum():
    assert Usage(prompt_tokens=3, completion_tokens=4).total_tokens == 7


def test_usage_vendor_total_wins():
    usage = Usage(prompt_tokens=3, completion_tokens=4, total_tokens=20)
    assert usage.total_tokens == 20


def test_usage_ignores_null_fields():
    usage = Usage(prompt_tokens=None, completion_tokens=2)
    assert usage.prompt_tokens == 0
    assert usage.total_tokens == 2


def test_missing_usage_is_none():
    provider = OpenAIProvider(api_key="mock_key")
    response = provider.map_response({"choices": [{"message": {"content": "Hi"}}]})
    assert response.usage is None
