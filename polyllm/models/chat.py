import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..providers.base import Provider
from ..streaming.aggregator import AsyncChatStream, ChatStream
from ..structured.schema import Schema
from ..tools.base import Tool
from ..transport.base import Transport
from ..types import (
    AssistantMessage,
    BaseMessage,
    ChatParams,
    ChatResponse,
    StructuredResponse,
    SystemMessage,
    TextResponse,
    ToolMessage,
    UserMessage,
)

logger = logging.getLogger("polyllm.models")

Prompt = Union[str, BaseMessage, Sequence[Union[BaseMessage, Dict[str, Any]]]]

_ROLES = {
    "system": SystemMessage,
    "user": UserMessage,
    "assistant": AssistantMessage,
    "tool": ToolMessage,
}


def to_messages(prompt: Prompt) -> List[BaseMessage]:
    """Normalize a prompt string, a message, or a list of messages / role dicts."""
    if isinstance(prompt, str):
        return [UserMessage(content=prompt)]
    if isinstance(prompt, BaseMessage):
        return [prompt]
    messages = []
    for m in prompt:
        if isinstance(m, BaseMessage):
            messages.append(m)
        elif isinstance(m, dict):
            role = m.get("role", "user")
            if role not in _ROLES:
                raise ValueError(f"Unknown message role '{role}'")
            messages.append(_ROLES[role](**{k: v for k, v in m.items() if k != "role"}))
        else:
            raise TypeError(f"Cannot use {type(m).__name__} as a message")
    return messages


def to_tools(tools: Optional[Sequence[Union[Tool, Callable, Dict[str, Any]]]]) -> Optional[List[Any]]:
    if not tools:
        return None
    out = []
    for t in tools:
        if isinstance(t, (Tool, dict)):
            out.append(t)
        elif callable(t):
            out.append(Tool.from_fn(t))
        else:
            raise TypeError(f"Cannot use {type(t).__name__} as a tool")
    return out


class ChatModel:
    """Wrapper for chat model interactions using a Provider strategy."""
    def __init__(self, model_name: str, provider: Provider, transport: Transport):
        self.model_name = model_name
        self.provider = provider
        self.transport = transport

    def _params(
        self,
        prompt: Prompt,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stop: Optional[Union[str, List[str]]] = None,
        tools: Optional[Sequence[Any]] = None,
        tool_choice: Optional[Union[str, Dict[str, Any]]] = None,
        response_schema: Optional[Schema] = None,
        stream: bool = False,
        options: Optional[Dict[str, Any]] = None,
    ) -> ChatParams:
        return ChatParams(
            model=self.model_name,
            messages=to_messages(prompt),
            temperature=temperature,
            max_tokens=max_tokens,
            stop=stop,
            tools=to_tools(tools),
            tool_choice=tool_choice,
            response_schema=response_schema,
            stream=stream,
            options=options or {},
        )

    @staticmethod
    def _send_kwargs(timeout: Optional[float]) -> Dict[str, Any]:
        return {"timeout": timeout} if timeout is not None else {}

    # -- sync -------------------------------------------------------------------

    def chat(self, prompt: Prompt, timeout: Optional[float] = None, **kwargs) -> ChatResponse:
        """
        Send one request and return the full response, tool calls included.

        Keyword arguments: temperature, max_tokens, stop, tools, tool_choice,
        options (vendor-specific extras merged into the payload last).
        """
        params = self._params(prompt, **kwargs)
        endpoint, data = self.provider.build_request(params)
        logger.debug(f"{self.provider.name}:{self.model_name} -> {endpoint}")
        response_data = self.transport.send(endpoint, data, **self._send_kwargs(timeout))
        return self.provider.map_response(response_data)

    def generate_text(self, prompt: Prompt, timeout: Optional[float] = None, **kwargs) -> TextResponse:
        return TextResponse.from_chat(self.chat(prompt, timeout=timeout, **kwargs))

    def stream(self, prompt: Prompt, timeout: Optional[float] = None, keep_raw: bool = False, **kwargs) -> ChatStream:
        """
        Start a streaming request. Nothing is sent until the returned stream
        is iterated; its `response` is available once iteration completes.
        """
        params = self._params(prompt, stream=True, **kwargs)
        endpoint, data = self.provider.build_request(params)
        logger.debug(f"{self.provider.name}:{self.model_name} -> {endpoint} (stream)")
        source = self.transport.stream(endpoint, data, **self._send_kwargs(timeout))
        return ChatStream(source, self.provider, keep_raw=keep_raw)

    def generate_object(self, prompt: Prompt, schema: Any, timeout: Optional[float] = None, hydrator: Any = None, **kwargs) -> StructuredResponse:
        """
        Request output conforming to `schema` (a Schema, pydantic model class,
        Shape, or raw JSON Schema dict) and hydrate it into the target shape.
        """
        schema = Schema.coerce(schema)
        response = self.chat(prompt, timeout=timeout, response_schema=schema, **kwargs)
        return self._structured(response, schema, hydrator)

    def _structured(self, response: ChatResponse, schema: Schema, hydrator: Any) -> StructuredResponse:
        output = self.provider.structured_output(response)
        obj = schema.parse(output, hydrator=hydrator)
        return StructuredResponse(
            object=obj,
            text=output if isinstance(output, str) else json.dumps(output),
            usage=response.usage,
            id=response.id,
            model=response.model,
            provider=response.provider,
            raw=response.raw,
        )

    # -- async ------------------------------------------------------------------

    async def chat_async(self, prompt: Prompt, timeout: Optional[float] = None, **kwargs) -> ChatResponse:
        params = self._params(prompt, **kwargs)
        endpoint, data = self.provider.build_request(params)
        logger.debug(f"{self.provider.name}:{self.model_name} -> {endpoint} (async)")
        response_data = await self.transport.send_async(endpoint, data, **self._send_kwargs(timeout))
        return self.provider.map_response(response_data)

    async def generate_text_async(self, prompt: Prompt, timeout: Optional[float] = None, **kwargs) -> TextResponse:
        return TextResponse.from_chat(await self.chat_async(prompt, timeout=timeout, **kwargs))

    def stream_async(self, prompt: Prompt, timeout: Optional[float] = None, keep_raw: bool = False, **kwargs) -> AsyncChatStream:
        params = self._params(prompt, stream=True, **kwargs)
        endpoint, data = self.provider.build_request(params)
        logger.debug(f"{self.provider.name}:{self.model_name} -> {endpoint} (async stream)")
        source = self.transport.stream_async(endpoint, data, **self._send_kwargs(timeout))
        return AsyncChatStream(source, self.provider, keep_raw=keep_raw)

    async def generate_object_async(self, prompt: Prompt, schema: Any, timeout: Optional[float] = None, hydrator: Any = None, **kwargs) -> StructuredResponse:
        schema = Schema.coerce(schema)
        response = await self.chat_async(prompt, timeout=timeout, response_schema=schema, **kwargs)
        return self._structured(response, schema, hydrator)
