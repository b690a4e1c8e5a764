import json
from typing import Any, Dict, List, Optional, Tuple, Union

from .. import dialects
from ..tools.base import render_tool, render_tool_choice
from ..types import (
    BaseMessage,
    ChatParams,
    ChatResponse,
    FinishReason,
    StreamDelta,
    Text,
    ToolCall,
    ToolCallDelta,
    ToolMessage,
    Usage,
)
from .base import STRUCTURED_TOOL, Provider, drop_none, normalize_finish_reason, raise_for_error_body

DEFAULT_MAX_TOKENS = 4096
API_VERSION = "2023-06-01"

FINISH_REASONS = {
    "end_turn": FinishReason.STOP.value,
    "stop_sequence": FinishReason.STOP.value,
    "max_tokens": FinishReason.LENGTH.value,
    "tool_use": FinishReason.TOOL_CALLS.value,
    "refusal": FinishReason.CONTENT_FILTER.value,
}


def usage_fields(usage_data: Dict[str, Any]) -> Dict[str, int]:
    fields: Dict[str, int] = {}
    mapping = (
        ("input_tokens", "prompt_tokens"),
        ("output_tokens", "completion_tokens"),
        ("cache_read_input_tokens", "cache_read_input_tokens"),
        ("cache_creation_input_tokens", "cache_creation_input_tokens"),
    )
    for src, dst in mapping:
        if usage_data.get(src) is not None:
            fields[dst] = usage_data[src]
    return fields


def _system_blocks(msg: BaseMessage) -> List[Dict[str, Any]]:
    parts = [msg.content] if isinstance(msg.content, str) else msg.content
    blocks = []
    for p in parts:
        if isinstance(p, str):
            blocks.append({"type": "text", "text": p})
        elif isinstance(p, Text):
            blocks.append({"type": "text", "text": p.text})
    if msg.cache_control and blocks:
        blocks[-1]["cache_control"] = {"type": msg.cache_control}
    return blocks


class AnthropicProvider(Provider):
    name = "anthropic"
    dialect = dialects.ANTHROPIC
    default_base_url = "https://api.anthropic.com/v1"

    def __init__(self, api_key: str = None, base_url: str = None, max_tokens: int = DEFAULT_MAX_TOKENS):
        self.api_key = api_key
        self._base_url = (base_url or self.default_base_url).rstrip("/")
        self.max_tokens = max_tokens

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "anthropic-version": API_VERSION,
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _system(self, messages: List[BaseMessage]) -> Optional[Union[str, List[Dict[str, Any]]]]:
        system = [m for m in messages if m.role == "system"]
        if not system:
            return None
        if len(system) == 1 and isinstance(system[0].content, str) and not system[0].cache_control:
            return system[0].content
        blocks = []
        for m in system:
            blocks.extend(_system_blocks(m))
        return blocks

    def _messages(self, messages: List[BaseMessage]) -> List[Dict[str, Any]]:
        formatted = []
        pending_results: List[Dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                continue
            rendered = msg.render_for(self.dialect)
            if isinstance(msg, ToolMessage):
                # consecutive tool results travel in one user turn
                pending_results.extend(rendered["content"])
                continue
            if pending_results:
                formatted.append({"role": "user", "content": pending_results})
                pending_results = []
            formatted.append(rendered)
        if pending_results:
            formatted.append({"role": "user", "content": pending_results})
        return formatted

    def build_request(self, params: ChatParams) -> Tuple[str, Dict[str, Any]]:
        tools = [render_tool(t, self.dialect) for t in params.tools] if params.tools else []
        tool_choice = render_tool_choice(params.tool_choice, self.dialect)

        schema = params.response_schema
        if schema is not None:
            tools.append({
                "name": STRUCTURED_TOOL,
                "description": schema.description or f"Record the extracted {schema.name} data.",
                "input_schema": schema.to_json_schema_document(),
            })
            tool_choice = {"type": "tool", "name": STRUCTURED_TOOL}

        payload: Dict[str, Any] = {
            "model": params.model,
            "messages": self._messages(params.messages),
            "system": self._system(params.messages),
            "max_tokens": params.max_tokens or self.max_tokens,
            "temperature": params.temperature,
            "stop_sequences": params.stop_sequences,
            "tools": tools or None,
            "tool_choice": tool_choice,
            "stream": True if params.stream else None,
        }
        payload.update(params.options)
        return "/messages", drop_none(payload)

    def map_response(self, response_data: Dict[str, Any]) -> ChatResponse:
        raise_for_error_body(response_data, self.name)
        text_content = ""
        tool_calls = []
        for block in response_data.get("content") or []:
            if block.get("type") == "text":
                text_content += block.get("text", "")
            elif block.get("type") == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.get("id", ""),
                    name=block.get("name", ""),
                    arguments=block.get("input") or {},
                ))

        usage_data = response_data.get("usage")
        return ChatResponse(
            content=text_content,
            tool_calls=tool_calls,
            finish_reason=normalize_finish_reason(response_data.get("stop_reason"), FINISH_REASONS),
            usage=Usage(**usage_fields(usage_data)) if usage_data else None,
            id=response_data.get("id"),
            model=response_data.get("model"),
            provider=self.name,
            raw=response_data,
        )

    def map_stream_chunk(self, chunk: Dict[str, Any]) -> Optional[StreamDelta]:
        raise_for_error_body(chunk, self.name)
        event_type = chunk.get("type")

        if event_type == "message_start":
            message = chunk.get("message") or {}
            usage_data = message.get("usage")
            return StreamDelta(
                id=message.get("id"),
                model=message.get("model"),
                usage=usage_fields(usage_data) if usage_data else None,
            )

        if event_type == "content_block_start":
            block = chunk.get("content_block") or {}
            if block.get("type") == "tool_use":
                initial = block.get("input")
                return StreamDelta(tool_calls=[ToolCallDelta(
                    index=chunk.get("index", 0),
                    id=block.get("id"),
                    name=block.get("name"),
                    arguments=json.dumps(initial) if initial else "",
                )])
            if block.get("type") == "text" and block.get("text"):
                return StreamDelta(text=block["text"])
            return None

        if event_type == "content_block_delta":
            delta = chunk.get("delta") or {}
            if delta.get("type") == "text_delta":
                return StreamDelta(text=delta.get("text", ""))
            if delta.get("type") == "input_json_delta":
                return StreamDelta(tool_calls=[ToolCallDelta(
                    index=chunk.get("index", 0),
                    arguments=delta.get("partial_json", ""),
                )])
            return None

        if event_type == "message_delta":
            delta = chunk.get("delta") or {}
            usage_data = chunk.get("usage")
            return StreamDelta(
                finish_reason=normalize_finish_reason(delta.get("stop_reason"), FINISH_REASONS),
                usage=usage_fields(usage_data) if usage_data else None,
            )

        # message_stop, content_block_stop, ping
        return None

    def structured_output(self, response: ChatResponse) -> Union[str, Dict[str, Any]]:
        for tc in response.tool_calls:
            if tc.name == STRUCTURED_TOOL:
                return tc.arguments
        return response.content
