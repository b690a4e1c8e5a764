from .aggregator import ACCUMULATING, COMPLETE, AsyncChatStream, ChatStream, StreamAggregator, StreamProgress
from .sse import DONE, SSEDecoder, SSEEvent, format_done, format_event

__all__ = [
    "ACCUMULATING",
    "COMPLETE",
    "DONE",
    "AsyncChatStream",
    "ChatStream",
    "SSEDecoder",
    "SSEEvent",
    "StreamAggregator",
    "StreamProgress",
    "format_done",
    "format_event",
]
