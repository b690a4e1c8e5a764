from polyllm.providers.anthropic import AnthropicProvider
from polyllm.types import ChatParams, SystemMessage, Text, UserMessage


def _build(*messages):
    provider = AnthropicProvider(api_key="test")
    return provider.build_request(ChatParams(model="claude-3-opus", messages=list(messages)))


def test_anthropic_caching_injection():
    # System message caching
    endpoint, payload = _build(SystemMessage(content="System Prompt", cache_control="ephemeral"), UserMessage(content="Hi"))

    system_val = payload["system"]
    assert isinstance(system_val, list)
    assert system_val[0]["type"] == "text"
    assert system_val[0]["cache_control"] == {"type": "ephemeral"}

    # User message caching
    endpoint, payload = _build(UserMessage(content="Hello", cache_control="ephemeral"))

    user_msg_content = payload["messages"][0]["content"]
    assert isinstance(user_msg_content, list)
    assert len(user_msg_content) == 1
    assert user_msg_content[0]["type"] == "text"
    assert user_msg_content[0]["text"] == "Hello"
    assert user_msg_content[0]["cache_control"] == {"type": "ephemeral"}


def test_anthropic_multi_block_caching():
    endpoint, payload = _build(UserMessage(
        content=[
            Text(text="Context 1"),
            Text(text="Context 2")
        ],
        cache_control="ephemeral"
    ))
    content = payload["messages"][0]["content"]

    # Only the last block carries the marker
    assert "cache_control" not in content[0]
    assert content[1]["cache_control"] == {"type": "ephemeral"}


def test_uncached_system_prompt_is_plain_string():
    _, payload = _build(SystemMessage(content="Be terse."), UserMessage(content="Hi"))
    assert payload["system"] == "Be terse."
    assert payload["messages"] == [{"role": "user", "content": "Hi"}]
