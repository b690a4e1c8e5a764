"""
Stream aggregation.

A StreamAggregator turns a vendor's event stream into text fragments for
the caller while accumulating the complete response (text, tool calls,
usage, finish reason). ChatStream and AsyncChatStream drive it over a
transport's chunks.

Tool-call arguments arrive as JSON text split at arbitrary points, so the
fragments are appended verbatim and parsed exactly once, when the stream
completes. Usage snapshots replace earlier values field by field; they
are never summed.
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, Iterable, Iterator, List, Optional

from ..exceptions import ProviderError, StreamTransportError
from ..types import ChatResponse, StreamDelta, ToolCall, ToolCallDelta, Usage
from .sse import SSEDecoder, SSEEvent

logger = logging.getLogger("polyllm.streaming")

ACCUMULATING = "accumulating"
COMPLETE = "complete"


class _ToolCallBuffer:
    __slots__ = ("index", "id", "name", "arguments")

    def __init__(self, index: int):
        self.index = index
        self.id: Optional[str] = None
        self.name = ""
        self.arguments: List[str] = []

    def snapshot(self) -> Dict[str, Any]:
        return {"index": self.index, "id": self.id, "name": self.name, "arguments": "".join(self.arguments)}


class StreamAggregator:
    """
    Accumulates one streamed response.

    States: ACCUMULATING until `finish()` is called, then COMPLETE. A
    finished aggregator rejects further input.
    """

    def __init__(self, provider: Any = None, keep_raw: bool = False):
        self.provider = provider
        self.state = ACCUMULATING
        self.done = False
        self._decoder = SSEDecoder()
        self._keep_raw = keep_raw
        self._raw_events: List[Any] = []
        self._event_count = 0

        self._text: List[str] = []
        self._tool_calls: Dict[int, _ToolCallBuffer] = {}
        self._usage: Dict[str, int] = {}
        self._finish_reason: Optional[str] = None
        self._id: Optional[str] = None
        self._model: Optional[str] = None
        self._response: Optional[ChatResponse] = None

    # -- input ----------------------------------------------------------------

    def feed(self, chunk: Any) -> List[str]:
        """Decode one transport chunk; returns the text fragments it produced."""
        self._check_open()
        if self.done:
            return []
        out = []
        for event in self._decoder.feed(chunk):
            text = self._handle_event(event)
            if text:
                out.append(text)
            if self.done:
                break
        return out

    def close(self) -> List[str]:
        """Transport ended: decode any event still buffered."""
        out = []
        if not self.done:
            for event in self._decoder.close():
                text = self._handle_event(event)
                if text:
                    out.append(text)
                if self.done:
                    break
        return out

    def add(self, delta: StreamDelta) -> str:
        """Fold one canonical delta into the running state; returns its text."""
        self._check_open()
        if delta.text:
            self._text.append(delta.text)
        for tc in delta.tool_calls:
            self._add_tool_call(tc)
        if delta.usage:
            if "total_tokens" not in delta.usage:
                self._usage.pop("total_tokens", None)
            self._usage.update(delta.usage)
        if delta.finish_reason:
            self._finish_reason = delta.finish_reason
        if delta.id:
            self._id = delta.id
        if delta.model:
            self._model = delta.model
        return delta.text

    def _handle_event(self, event: SSEEvent) -> str:
        if event.is_done:
            self.done = True
            return ""
        try:
            payload = event.json()
        except json.JSONDecodeError:
            logger.warning(f"Skipping non-JSON stream event: {event.data[:80]!r}")
            return ""
        self._event_count += 1
        if self._keep_raw:
            self._raw_events.append(payload)
        if event.event and isinstance(payload, dict) and "type" not in payload:
            payload = {**payload, "type": event.event}
        delta = self.provider.map_stream_chunk(payload)
        if delta is None:
            return ""
        return self.add(delta)

    def _add_tool_call(self, tc: ToolCallDelta) -> None:
        index = tc.index
        if index is None:
            index = max(self._tool_calls) + 1 if self._tool_calls else 0
        buf = self._tool_calls.get(index)
        if buf is None:
            buf = _ToolCallBuffer(index)
            self._tool_calls[index] = buf
        if tc.id and not buf.id:
            buf.id = tc.id
        if tc.name:
            buf.name += tc.name
        if tc.arguments:
            buf.arguments.append(tc.arguments)

    def _check_open(self) -> None:
        if self.state == COMPLETE:
            raise RuntimeError("Stream already finalized")

    # -- views ------------------------------------------------------------------

    @property
    def content(self) -> str:
        return "".join(self._text)

    @property
    def usage(self) -> Optional[Usage]:
        return Usage(**self._usage) if self._usage else None

    @property
    def event_count(self) -> int:
        return self._event_count

    def partial_tool_calls(self) -> List[Dict[str, Any]]:
        return [self._tool_calls[i].snapshot() for i in sorted(self._tool_calls)]

    # -- completion -------------------------------------------------------------

    def finish(self) -> ChatResponse:
        if self._response is not None:
            return self._response

        tool_calls = []
        seen_ids = set()
        for i in sorted(self._tool_calls):
            buf = self._tool_calls[i]
            call_id = buf.id or f"call_{buf.name or i}"
            # synthesized ids repeat when a function is called twice
            if call_id in seen_ids:
                call_id = f"{call_id}_{len(tool_calls)}"
            seen_ids.add(call_id)
            tool_calls.append(ToolCall.from_text(call_id, buf.name, "".join(buf.arguments)))

        raw: Dict[str, Any] = {"events": self._raw_events} if self._keep_raw else {"event_count": self._event_count}
        self._response = ChatResponse(
            content=self.content,
            tool_calls=tool_calls,
            finish_reason=self._finish_reason,
            usage=self.usage,
            id=self._id,
            model=self._model,
            provider=getattr(self.provider, "name", None),
            raw=raw,
        )
        self.state = COMPLETE
        logger.debug(
            f"Stream complete: {len(self.content)} chars, {len(tool_calls)} tool calls, "
            f"finish_reason={self._finish_reason}"
        )
        return self._response

    def failure(self, error: Exception) -> StreamTransportError:
        """Wrap a mid-stream failure, keeping what was received so far."""
        logger.error(f"Stream interrupted after {self._event_count} events: {error}")
        return StreamTransportError(
            f"Stream interrupted: {error}",
            partial_content=self.content,
            partial_tool_calls=self.partial_tool_calls(),
            usage=self.usage,
        )


@dataclass(frozen=True)
class StreamProgress:
    """Point-in-time view of a stream in flight."""
    events: int
    content_length: int
    tool_calls: int
    usage: Optional[Usage]
    elapsed: float
    finished: bool


# raised while decoding chunks the transport did deliver
_DECODE_ERRORS = (ProviderError, UnicodeDecodeError)


class _StreamBase:
    def __init__(self, source: Any, provider: Any, keep_raw: bool = False):
        self._source = source
        self._aggregator = StreamAggregator(provider, keep_raw=keep_raw)
        self._started = False
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None
        self._chunk_callbacks: List[Callable[[str, StreamProgress], Any]] = []
        self._complete_callbacks: List[Callable[[ChatResponse], Any]] = []
        self._error_callbacks: List[Callable[[StreamTransportError], Any]] = []

    def on_chunk(self, callback: Callable[[str, StreamProgress], Any]):
        """Call `callback(text, progress)` for every text fragment, before it is yielded."""
        self._chunk_callbacks.append(callback)
        return self

    def on_complete(self, callback: Callable[[ChatResponse], Any]):
        self._check_pending()
        self._complete_callbacks.append(callback)
        return self

    def on_error(self, callback: Callable[[StreamTransportError], Any]):
        """Called with the StreamTransportError just before it is raised."""
        self._check_pending()
        self._error_callbacks.append(callback)
        return self

    def _check_pending(self) -> None:
        if self.finished:
            raise RuntimeError("Stream already completed")

    def progress(self) -> StreamProgress:
        agg = self._aggregator
        if self._started_at is None:
            elapsed = 0.0
        else:
            elapsed = (self._finished_at or time.monotonic()) - self._started_at
        return StreamProgress(
            events=agg.event_count,
            content_length=len(agg.content),
            tool_calls=len(agg.partial_tool_calls()),
            usage=agg.usage,
            elapsed=elapsed,
            finished=self.finished,
        )

    @property
    def finished(self) -> bool:
        return self._aggregator.state == COMPLETE

    @property
    def response(self) -> ChatResponse:
        if not self.finished:
            raise RuntimeError("Stream has not completed; iterate it to the end first")
        return self._aggregator.finish()

    @property
    def text(self) -> str:
        """Text received so far."""
        return self._aggregator.content

    @property
    def usage(self) -> Optional[Usage]:
        """Latest usage snapshot, available mid-stream."""
        return self._aggregator.usage

    def _start(self) -> None:
        if self._started:
            raise RuntimeError(f"{type(self).__name__} can only be iterated once")
        self._started = True
        self._started_at = time.monotonic()

    def _chunk(self, text: str) -> str:
        if self._chunk_callbacks:
            progress = self.progress()
            for callback in self._chunk_callbacks:
                callback(text, progress)
        return text

    def _complete(self) -> None:
        response = self._aggregator.finish()
        self._finished_at = time.monotonic()
        for callback in self._complete_callbacks:
            callback(response)

    def _fail(self, error: Exception) -> StreamTransportError:
        failure = self._aggregator.failure(error)
        for callback in self._error_callbacks:
            callback(failure)
        return failure


class ChatStream(_StreamBase):
    """
    Lazy, forward-only stream of text fragments.

    Iterate it once; `response` holds the aggregated ChatResponse after the
    iteration has run to completion. Abandoning the iteration early leaves
    the stream unfinished. `progress()` reports counts, usage and elapsed
    time at any point; `on_chunk`/`on_complete`/`on_error` register
    callbacks.
    """

    def __init__(self, source: Iterable[Any], provider: Any, keep_raw: bool = False):
        super().__init__(source, provider, keep_raw)

    def __iter__(self) -> Iterator[str]:
        self._start()
        return self._run()

    def _run(self) -> Iterator[str]:
        agg = self._aggregator
        source = iter(self._source)
        while not agg.done:
            try:
                chunk = next(source)
            except StopIteration:
                break
            except Exception as e:
                raise self._fail(e) from e
            try:
                texts = agg.feed(chunk)
            except _DECODE_ERRORS as e:
                raise self._fail(e) from e
            for text in texts:
                yield self._chunk(text)
        try:
            texts = agg.close()
        except _DECODE_ERRORS as e:
            raise self._fail(e) from e
        for text in texts:
            yield self._chunk(text)
        self._complete()

    def collect(self) -> ChatResponse:
        """Drain the stream and return the aggregated response."""
        for _ in self:
            pass
        return self.response


class AsyncChatStream(_StreamBase):
    """Async twin of ChatStream."""

    def __init__(self, source: AsyncIterable[Any], provider: Any, keep_raw: bool = False):
        super().__init__(source, provider, keep_raw)

    def __aiter__(self) -> AsyncIterator[str]:
        self._start()
        return self._run()

    async def _run(self) -> AsyncIterator[str]:
        agg = self._aggregator
        source = self._source.__aiter__()
        while not agg.done:
            try:
                chunk = await source.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                raise self._fail(e) from e
            try:
                texts = agg.feed(chunk)
            except _DECODE_ERRORS as e:
                raise self._fail(e) from e
            for text in texts:
                yield self._chunk(text)
        try:
            texts = agg.close()
        except _DECODE_ERRORS as e:
            raise self._fail(e) from e
        for text in texts:
            yield self._chunk(text)
        self._complete()

    async def collect(self) -> ChatResponse:
        async for _ in self:
            pass
        return self.response
