import pytest

from polyllm.exceptions import UnsupportedDialectOperation
from polyllm.tools.base import Tool, render_tool_choice
from polyllm.types import AssistantMessage, ChatResponse, SystemMessage, ToolCall, ToolMessage, UserMessage


def test_user_message_renders_per_dialect():
    msg = UserMessage(content="Hello")

    assert msg.render_for("openai") == {"role": "user", "content": "Hello"}
    assert msg.render_for("anthropic") == {"role": "user", "content": "Hello"}
    assert msg.render_for("google") == {"role": "user", "parts": [{"text": "Hello"}]}


def test_system_message_only_inline_for_openai():
    msg = SystemMessage(content="Be helpful")

    assert msg.render_for("openai") == {"role": "system", "content": "Be helpful"}
    for dialect in ("anthropic", "google"):
        with pytest.raises(UnsupportedDialectOperation):
            msg.render_for(dialect)


def test_assistant_tool_calls_openai():
    msg = AssistantMessage(tool_calls=[ToolCall(id="call_1", name="get_weather", arguments={"city": "Paris"})])
    rendered = msg.render_for("openai")

    assert rendered["content"] is None
    assert rendered["tool_calls"] == [{
        "id": "call_1",
        "type": "function",
        "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
    }]


def test_assistant_tool_calls_echo_raw_arguments_verbatim():
    call = ToolCall.from_text("call_9", "lookup", '{"b":1,"a":2}')
    rendered = AssistantMessage(tool_calls=[call]).render_for("openai")

    assert rendered["tool_calls"][0]["function"]["arguments"] == '{"b":1,"a":2}'
    assert list(call.arguments) == ["b", "a"]


def test_assistant_tool_calls_anthropic_and_google():
    msg = AssistantMessage(content="Checking", tool_calls=[ToolCall(id="toolu_1", name="lookup", arguments={"q": "x"})])

    assert msg.render_for("anthropic") == {
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Checking"},
            {"type": "tool_use", "id": "toolu_1", "name": "lookup", "input": {"q": "x"}},
        ],
    }
    assert msg.render_for("google") == {
        "role": "model",
        "parts": [{"text": "Checking"}, {"functionCall": {"name": "lookup", "args": {"q": "x"}}}],
    }


def test_tool_message_renderings():
    msg = ToolMessage(tool_call_id="call_1", name="lookup", content="42")

    assert msg.render_for("openai") == {"role": "tool", "tool_call_id": "call_1", "content": "42"}
    assert msg.render_for("anthropic") == {
        "role": "user",
        "content": [{"type": "tool_result", "tool_use_id": "call_1", "content": "42"}],
    }
    google = msg.render_for("google")
    assert google["role"] == "function"
    assert google["parts"][0]["functionResponse"]["name"] == "lookup"


def test_assistant_from_response_preserves_ids():
    response = ChatResponse(content="", tool_calls=[ToolCall(id="abc-123", name="f", arguments={})])
    msg = AssistantMessage.from_response(response)
    assert msg.tool_calls[0].id == "abc-123"


def test_unparsable_tool_arguments_are_kept_raw():
    call = ToolCall.from_text("c1", "f", '{"a": ')
    assert call.arguments == {}
    assert call.raw_arguments == '{"a": '


def test_message_text_joins_text_parts():
    msg = UserMessage(content=["a", "b"])
    assert msg.text == "ab"


# --- tools -------------------------------------------------------------------------

def get_weather(city: str, unit: str = "celsius") -> str:
    """Look up the weather."""
    return f"{city}:{unit}"


def test_tool_from_fn_renders_per_dialect():
    tool = Tool.from_fn(get_weather)

    openai = tool.render_for("openai")
    assert openai["type"] == "function"
    assert openai["function"]["name"] == "get_weather"
    assert openai["function"]["description"] == "Look up the weather."
    assert openai["function"]["parameters"]["required"] == ["city"]

    assert tool.render_for("anthropic")["input_schema"] == tool.parameters
    assert tool.render_for("google")["parameters"] == tool.parameters


def test_tool_choice_translation():
    assert render_tool_choice("auto", "openai") == "auto"
    assert render_tool_choice("lookup", "openai") == {"type": "function", "function": {"name": "lookup"}}
    assert render_tool_choice("required", "anthropic") == {"type": "any"}
    assert render_tool_choice("lookup", "anthropic") == {"type": "tool", "name": "lookup"}
    assert render_tool_choice("none", "google") == {"functionCallingConfig": {"mode": "NONE"}}
    assert render_tool_choice(None, "google") is None
