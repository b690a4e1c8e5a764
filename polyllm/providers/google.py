import json
from typing import Any, Dict, List, Optional, Tuple, Union

from .. import dialects
from ..tools.base import render_tool, render_tool_choice
from ..types import ChatParams, ChatResponse, FinishReason, StreamDelta, ToolCall, ToolCallDelta, Usage
from .base import Provider, drop_none, normalize_finish_reason, raise_for_error_body

FINISH_REASONS = {
    "STOP": FinishReason.STOP.value,
    "MAX_TOKENS": FinishReason.LENGTH.value,
    "SAFETY": FinishReason.CONTENT_FILTER.value,
    "RECITATION": FinishReason.CONTENT_FILTER.value,
    "BLOCKLIST": FinishReason.CONTENT_FILTER.value,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER.value,
    "SPII": FinishReason.CONTENT_FILTER.value,
}


def usage_fields(meta: Dict[str, Any]) -> Dict[str, int]:
    fields: Dict[str, int] = {}
    mapping = (
        ("promptTokenCount", "prompt_tokens"),
        ("candidatesTokenCount", "completion_tokens"),
        ("totalTokenCount", "total_tokens"),
        ("cachedContentTokenCount", "cache_read_input_tokens"),
    )
    for src, dst in mapping:
        if meta.get(src) is not None:
            fields[dst] = meta[src]
    return fields


def _candidate_parts(data: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    candidates = data.get("candidates") or []
    if not candidates:
        return [], None
    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts") or []
    return parts, candidate.get("finishReason")


class GoogleProvider(Provider):
    name = "google"
    dialect = dialects.GOOGLE
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, api_key: str = None, base_url: str = None):
        self.api_key = api_key
        self._base_url = (base_url or self.default_base_url).rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        return headers

    def build_request(self, params: ChatParams) -> Tuple[str, Dict[str, Any]]:
        system_texts = [m.text for m in params.messages if m.role == "system"]
        contents = [m.render_for(self.dialect) for m in params.messages if m.role != "system"]

        generation_config = drop_none({
            "temperature": params.temperature,
            "maxOutputTokens": params.max_tokens,
            "stopSequences": params.stop_sequences,
        })
        schema = params.response_schema
        if schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseJsonSchema"] = schema.to_json_schema_document()

        payload: Dict[str, Any] = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": t} for t in system_texts]} if system_texts else None,
            "generationConfig": generation_config or None,
            "tools": [{"functionDeclarations": [render_tool(t, self.dialect) for t in params.tools]}] if params.tools else None,
            "toolConfig": render_tool_choice(params.tool_choice, self.dialect),
        }
        payload.update(params.options)

        method = "streamGenerateContent?alt=sse" if params.stream else "generateContent"
        return f"/models/{params.model}:{method}", drop_none(payload)

    def map_response(self, response_data: Dict[str, Any]) -> ChatResponse:
        raise_for_error_body(response_data, self.name)
        parts, finish = _candidate_parts(response_data)

        content = ""
        tool_calls: List[ToolCall] = []
        seen_ids = set()
        for part in parts:
            if "text" in part and not part.get("thought"):
                content += part["text"]
            if "functionCall" in part:
                fc = part["functionCall"]
                call_id = fc.get("id") or f"call_{fc['name']}"
                if call_id in seen_ids:
                    call_id = f"{call_id}_{len(tool_calls)}"
                seen_ids.add(call_id)
                tool_calls.append(ToolCall(id=call_id, name=fc["name"], arguments=fc.get("args") or {}))

        meta = response_data.get("usageMetadata")
        return ChatResponse(
            content=content,
            tool_calls=tool_calls,
            finish_reason=normalize_finish_reason(finish, FINISH_REASONS),
            usage=Usage(**usage_fields(meta)) if meta else None,
            id=response_data.get("responseId"),
            model=response_data.get("modelVersion"),
            provider=self.name,
            raw=response_data,
        )

    def map_stream_chunk(self, chunk: Dict[str, Any]) -> Optional[StreamDelta]:
        raise_for_error_body(chunk, self.name)
        parts, finish = _candidate_parts(chunk)

        text = ""
        tool_calls = []
        for part in parts:
            if "text" in part and not part.get("thought"):
                text += part["text"]
            if "functionCall" in part:
                fc = part["functionCall"]
                # Gemini never splits a call across events
                tool_calls.append(ToolCallDelta(
                    index=None,
                    id=fc.get("id") or f"call_{fc['name']}",
                    name=fc["name"],
                    arguments=json.dumps(fc.get("args") or {}),
                ))

        meta = chunk.get("usageMetadata")
        return StreamDelta(
            text=text,
            tool_calls=tool_calls,
            usage=usage_fields(meta) if meta else None,
            finish_reason=normalize_finish_reason(finish, FINISH_REASONS),
            id=chunk.get("responseId"),
            model=chunk.get("modelVersion"),
        )

    def structured_output(self, response: ChatResponse) -> Union[str, Dict[str, Any]]:
        return response.content
