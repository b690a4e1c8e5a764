from polyllm.providers.openai import MistralProvider, OpenAIProvider, OpenRouterProvider
from polyllm.structured.schema import Schema
from polyllm.structured.shape import ShapeBuilder
from polyllm.tools.base import Tool
from polyllm.types import ChatParams, SystemMessage, UserMessage


def _params(**kwargs):
    kwargs.setdefault("model", "gpt-4o")
    kwargs.setdefault("messages", [SystemMessage(content="sys"), UserMessage(content="Hello")])
    return ChatParams(**kwargs)


def test_build_request_minimal_drops_nulls():
    endpoint, data = OpenAIProvider(api_key="k").build_request(_params())

    assert endpoint == "/chat/completions"
    assert data == {
        "model": "gpt-4o",
        "messages": [{"role": "system", "content": "sys"}, {"role": "user", "content": "Hello"}],
    }


def test_build_request_parameters_and_options():
    tool = Tool(name="lookup", description="Find", raw_schema={"type": "object", "properties": {}})
    _, data = OpenAIProvider(api_key="k").build_request(_params(
        temperature=0.2,
        max_tokens=50,
        stop=["END"],
        tools=[tool],
        tool_choice="lookup",
        options={"seed": 7, "user": None},
    ))

    assert data["temperature"] == 0.2
    assert data["max_tokens"] == 50
    assert data["stop"] == ["END"]
    assert data["tools"][0]["function"]["name"] == "lookup"
    assert data["tool_choice"] == {"type": "function", "function": {"name": "lookup"}}
    assert data["seed"] == 7
    assert "user" not in data


def test_stream_request_asks_for_usage():
    _, data = OpenAIProvider(api_key="k").build_request(_params(stream=True))
    assert data["stream"] is True
    assert data["stream_options"] == {"include_usage": True}


def test_structured_request_uses_json_schema_response_format():
    schema = Schema.from_shape_description(ShapeBuilder("Person").string("name").integer("age").build())
    _, data = OpenAIProvider(api_key="k").build_request(_params(response_schema=schema))

    rf = data["response_format"]
    assert rf["type"] == "json_schema"
    assert rf["json_schema"]["name"] == "Person"
    assert rf["json_schema"]["strict"] is True
    assert rf["json_schema"]["schema"] == schema.to_json_schema_document()


def test_structured_request_not_strict_when_fields_optional():
    shape = ShapeBuilder("Prefs").string("theme", default="dark").build()
    _, data = OpenAIProvider(api_key="k").build_request(_params(response_schema=Schema.from_shape_description(shape)))
    assert data["response_format"]["json_schema"]["strict"] is False


def test_map_response_with_tool_calls():
    body = {
        "id": "chatcmpl-1",
        "model": "gpt-4o-2024",
        "choices": [{
            "message": {
                "content": None,
                "tool_calls": [{
                    "id": "call_abc",
                    "type": "function",
                    "function": {"name": "lookup", "arguments": '{"z": 1, "a": 2}'},
                }],
            },
            "finish_reason": "tool_calls",
        }],
    }
    response = OpenAIProvider(api_key="k").map_response(body)

    assert response.content == ""
    assert response.finish_reason == "tool_calls"
    assert response.tool_calls[0].id == "call_abc"
    assert list(response.tool_calls[0].arguments) == ["z", "a"]
    assert response.id == "chatcmpl-1"
    assert response.provider == "openai"
    assert response.raw == body


def test_unknown_finish_reason_passes_through():
    body = {"choices": [{"message": {"content": "x"}, "finish_reason": "eos_token"}]}
    assert OpenAIProvider(api_key="k").map_response(body).finish_reason == "eos_token"


def test_map_stream_chunk():
    provider = OpenAIProvider(api_key="k")
    delta = provider.map_stream_chunk({
        "id": "c1",
        "choices": [{"index": 0, "delta": {"tool_calls": [{"index": 1, "id": "call_1", "function": {"name": "f", "arguments": "{\"a"}}]}}],
    })

    assert delta.text == ""
    assert delta.tool_calls[0].index == 1
    assert delta.tool_calls[0].arguments == '{"a'

    usage_only = provider.map_stream_chunk({"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}})
    assert usage_only.usage == {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}


def test_mistral_tool_choice_required_is_any():
    provider = MistralProvider(api_key="k")
    _, data = provider.build_request(_params(model="mistral-large", tool_choice="required"))
    assert data["tool_choice"] == "any"


def test_openrouter_attribution_headers():
    provider = OpenRouterProvider(api_key="k", app_url="https://example.com", app_name="demo")
    assert provider.headers["HTTP-Referer"] == "https://example.com"
    assert provider.headers["X-Title"] == "demo"
    assert provider.dialect == "openai"
