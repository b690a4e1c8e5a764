"""
Testing utilities for polyllm applications.
Use these tools to verify your code without making real API calls.

MockTransport replays canned vendor bodies and SSE streams through the
real provider adapters; MockProvider skips the wire format entirely and
hands back ready-made ChatResponses.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from . import dialects
from .providers.base import Provider
from .streaming.sse import format_done, format_event
from .transport.base import Transport
from .types import ChatParams, ChatResponse, StreamDelta, ToolCall, Usage


class MockTransport(Transport):
    """
    A transport that records requests and replays queued responses.

        transport = MockTransport()
        transport.add_response({"choices": [...]})
        transport.add_sse([{"choices": [...]}, ...])
        client = Client(transport_factory=lambda **kw: transport)
    """
    def __init__(self, base_url: str = "", headers: Dict[str, str] = None, timeout: Optional[float] = None):
        self.base_url = base_url
        self.headers = headers or {}
        self.timeout = timeout
        self.requests: List[Tuple[str, Dict[str, Any]]] = []
        self.timeouts: List[Optional[float]] = []
        self._responses: List[Union[Dict[str, Any], Exception]] = []
        self._streams: List[Tuple[List[str], Optional[Exception]]] = []

    @property
    def last_request(self) -> Tuple[str, Dict[str, Any]]:
        return self.requests[-1]

    def add_response(self, body: Dict[str, Any]) -> "MockTransport":
        """Queue a vendor response body for the next send."""
        self._responses.append(body)
        return self

    def add_error(self, error: Exception) -> "MockTransport":
        """Queue an error to be raised by the next send."""
        self._responses.append(error)
        return self

    def add_stream(self, lines: Sequence[str], error: Optional[Exception] = None) -> "MockTransport":
        """Queue raw stream lines; `error` is raised after the last line is delivered."""
        self._streams.append((list(lines), error))
        return self

    def add_sse(
        self,
        events: Sequence[Union[Dict[str, Any], Tuple[str, Dict[str, Any]]]],
        done: bool = True,
        error: Optional[Exception] = None,
    ) -> "MockTransport":
        """
        Queue a stream framed as SSE. Each event is a payload dict or an
        (event name, payload) pair. `done` appends the [DONE] sentinel.
        """
        text = ""
        for ev in events:
            if isinstance(ev, tuple):
                text += format_event(ev[1], event=ev[0])
            else:
                text += format_event(ev)
        if done:
            text += format_done()
        return self.add_stream(text.split("\n"), error=error)

    def _record(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float]) -> None:
        self.requests.append((endpoint, data))
        self.timeouts.append(timeout)

    def _next_response(self) -> Dict[str, Any]:
        if not self._responses:
            return {}
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def _next_stream(self) -> Tuple[List[str], Optional[Exception]]:
        if not self._streams:
            return [], None
        return self._streams.pop(0)

    def send(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        self._record(endpoint, data, timeout)
        return self._next_response()

    async def send_async(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        self._record(endpoint, data, timeout)
        return self._next_response()

    def stream(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None):
        self._record(endpoint, data, timeout)
        lines, error = self._next_stream()
        for line in lines:
            yield {"raw": line}
        if error is not None:
            raise error

    async def stream_async(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None):
        self._record(endpoint, data, timeout)
        lines, error = self._next_stream()
        for line in lines:
            yield {"raw": line}
        if error is not None:
            raise error


class MockProvider(Provider):
    """
    A provider that returns pre-configured responses.
    Useful for unit testing your application logic.

    Requests are still built (and recorded) as canonical ChatParams;
    streamed responses are replayed as whole-text events.
    """
    name = "mock"
    dialect = dialects.OPENAI

    def __init__(self, base_url: str = "mock://test"):
        self._base_url = base_url
        self._responses: List[Union[ChatResponse, Exception]] = []
        self.requests: List[ChatParams] = []

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> Dict[str, str]:
        return {"X-Mock": "true"}

    def add_response(self, text: str = "", tool_calls: Optional[List[ToolCall]] = None, usage: Optional[Usage] = None, finish_reason: str = "stop") -> "MockProvider":
        """Add a canned response to the queue."""
        self._responses.append(ChatResponse(
            content=text,
            tool_calls=tool_calls or [],
            finish_reason=finish_reason,
            usage=usage or Usage(prompt_tokens=5, completion_tokens=5),
            provider=self.name,
        ))
        return self

    def add_error(self, error: Exception) -> "MockProvider":
        """Add an error to be raised when the next response is mapped."""
        self._responses.append(error)
        return self

    def build_request(self, params: ChatParams) -> Tuple[str, Dict[str, Any]]:
        """Record the request and return a minimal payload."""
        self.requests.append(params)
        return "/mock", {"model": params.model, "stream": params.stream}

    def map_response(self, response_data: Dict[str, Any]) -> ChatResponse:
        """Return the next queued response."""
        if not self._responses:
            return ChatResponse(content="Mock Response", provider=self.name)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def map_stream_chunk(self, chunk: Dict[str, Any]) -> Optional[StreamDelta]:
        usage = chunk.get("usage")
        return StreamDelta(
            text=chunk.get("text", ""),
            finish_reason=chunk.get("finish_reason"),
            usage=usage,
        )

    def structured_output(self, response: ChatResponse) -> Union[str, Dict[str, Any]]:
        return response.content
