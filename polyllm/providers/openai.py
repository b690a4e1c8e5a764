from typing import Any, Dict, List, Optional, Tuple, Union

from .. import dialects
from ..exceptions import InvalidRequestError
from ..tools.base import render_tool, render_tool_choice
from ..types import ChatParams, ChatResponse, FinishReason, StreamDelta, ToolCall, ToolCallDelta, Usage
from .base import Provider, drop_none, normalize_finish_reason, raise_for_error_body

FINISH_REASONS = {
    "stop": FinishReason.STOP.value,
    "length": FinishReason.LENGTH.value,
    "tool_calls": FinishReason.TOOL_CALLS.value,
    "content_filter": FinishReason.CONTENT_FILTER.value,
    "function_call": FinishReason.FUNCTION_CALL.value,
}


def usage_fields(usage_data: Dict[str, Any]) -> Dict[str, int]:
    """Canonical usage fields reported in an OpenAI-style usage object."""
    fields: Dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        if usage_data.get(key) is not None:
            fields[key] = usage_data[key]
    details = usage_data.get("prompt_tokens_details") or {}
    if details.get("cached_tokens") is not None:
        fields["cache_read_input_tokens"] = details["cached_tokens"]
    return fields


def _message_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, list):
        return "".join(p.get("text", "") for p in content if isinstance(p, dict))
    return content


class OpenAIProvider(Provider):
    name = "openai"
    dialect = dialects.OPENAI
    default_base_url = "https://api.openai.com/v1"

    def __init__(self, api_key: str = None, base_url: str = None, organization: str = None, project: str = None):
        self.api_key = api_key
        self._base_url = (base_url or self.default_base_url).rstrip("/")
        self.organization = organization
        self.project = project

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        if self.project:
            headers["OpenAI-Project"] = self.project
        return headers

    def _tool_choice(self, choice: Any) -> Any:
        return render_tool_choice(choice, self.dialect)

    def build_request(self, params: ChatParams) -> Tuple[str, Dict[str, Any]]:
        data: Dict[str, Any] = {
            "model": params.model,
            "messages": [m.render_for(self.dialect) for m in params.messages],
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
            "stop": params.stop,
            "tools": [render_tool(t, self.dialect) for t in params.tools] if params.tools else None,
            "tool_choice": self._tool_choice(params.tool_choice),
        }

        if params.stream:
            data["stream"] = True
            data["stream_options"] = {"include_usage": True}

        schema = params.response_schema
        if schema is not None:
            data["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.name,
                    "schema": schema.to_json_schema_document(),
                    "strict": schema.is_strict_compatible(),
                },
            }

        data.update(params.options)
        return "/chat/completions", drop_none(data)

    def map_response(self, response_data: Dict[str, Any]) -> ChatResponse:
        raise_for_error_body(response_data, self.name)
        choices = response_data.get("choices") or [{}]
        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = []
        for rc in message.get("tool_calls") or []:
            fn = rc.get("function") or {}
            tool_calls.append(ToolCall.from_text(rc.get("id") or f"call_{len(tool_calls)}", fn.get("name", ""), fn.get("arguments")))

        usage_data = response_data.get("usage")
        return ChatResponse(
            content=_message_text(message.get("content")),
            tool_calls=tool_calls,
            finish_reason=normalize_finish_reason(choice.get("finish_reason"), FINISH_REASONS),
            usage=Usage(**usage_fields(usage_data)) if usage_data else None,
            id=response_data.get("id"),
            model=response_data.get("model"),
            provider=self.name,
            raw=response_data,
        )

    def map_stream_chunk(self, chunk: Dict[str, Any]) -> Optional[StreamDelta]:
        raise_for_error_body(chunk, self.name)
        text = ""
        tool_calls: List[ToolCallDelta] = []
        finish_reason = None

        choices = chunk.get("choices") or []
        if choices:
            choice = choices[0]
            delta = choice.get("delta") or {}
            text = _message_text(delta.get("content"))
            for tc in delta.get("tool_calls") or []:
                fn = tc.get("function") or {}
                tool_calls.append(ToolCallDelta(
                    index=tc.get("index", 0),
                    id=tc.get("id"),
                    name=fn.get("name"),
                    arguments=fn.get("arguments") or "",
                ))
            finish_reason = normalize_finish_reason(choice.get("finish_reason"), FINISH_REASONS)

        usage_data = chunk.get("usage")
        return StreamDelta(
            text=text,
            tool_calls=tool_calls,
            usage=usage_fields(usage_data) if usage_data else None,
            finish_reason=finish_reason,
            id=chunk.get("id"),
            model=chunk.get("model"),
        )

    def structured_output(self, response: ChatResponse) -> Union[str, Dict[str, Any]]:
        choices = response.raw.get("choices") or [{}]
        refusal = (choices[0].get("message") or {}).get("refusal")
        if refusal and not response.content:
            raise InvalidRequestError(f"Model refused to produce structured output: {refusal}")
        return response.content


class XAIProvider(OpenAIProvider):
    name = "xai"
    default_base_url = "https://api.x.ai/v1"


class MistralProvider(OpenAIProvider):
    name = "mistral"
    default_base_url = "https://api.mistral.ai/v1"

    def _tool_choice(self, choice: Any) -> Any:
        # Mistral spells "required" as "any"
        if choice == "required":
            return "any"
        return super()._tool_choice(choice)


class OpenRouterProvider(OpenAIProvider):
    name = "openrouter"
    default_base_url = "https://openrouter.ai/api/v1"

    def __init__(self, api_key: str = None, base_url: str = None, app_url: str = None, app_name: str = None):
        super().__init__(api_key=api_key, base_url=base_url)
        self.app_url = app_url
        self.app_name = app_name

    @property
    def headers(self) -> Dict[str, str]:
        headers = super().headers
        if self.app_url:
            headers["HTTP-Referer"] = self.app_url
        if self.app_name:
            headers["X-Title"] = self.app_name
        return headers
