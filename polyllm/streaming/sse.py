"""
Server-sent events framing.

Vendors stream responses as SSE: `field: value` lines, events separated
by a blank line, comment lines starting with ':'. OpenAI-compatible
vendors end the stream with a `data: [DONE]` sentinel; others simply
close the connection.
"""
import codecs
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

DONE = "[DONE]"


@dataclass
class SSEEvent:
    data: str
    event: Optional[str] = None
    id: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE

    def json(self) -> Any:
        return json.loads(self.data)


class SSEDecoder:
    """
    Incremental decoder. Feed it transport chunks (one line each, or raw
    text with embedded newlines) and collect the events they complete.
    """

    def __init__(self):
        self._data: List[str] = []
        self._event: Optional[str] = None
        self._id: Optional[str] = None
        self._partial = ""
        self._bytes = codecs.getincrementaldecoder("utf-8")()
        self._held = ""

    def feed_line(self, line: str) -> Optional[SSEEvent]:
        line = line.rstrip("\r\n")
        if line == "":
            return self._flush()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if not sep:
            value = ""
        elif value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            self._id = value
        return None

    def feed_text(self, text: str) -> List[SSEEvent]:
        """Feed raw text that may split or join lines arbitrarily."""
        buffer = self._partial + text
        lines = buffer.split("\n")
        self._partial = lines.pop()
        events = []
        for line in lines:
            event = self.feed_line(line)
            if event is not None:
                events.append(event)
        return events

    def feed(self, chunk: Union[Dict[str, Any], str, bytes]) -> List[SSEEvent]:
        """
        Feed one transport chunk. Transports yield {"raw": line} dicts;
        a bare str or bytes chunk is treated as a single line. Bytes are
        decoded incrementally, so a character split across chunks is held
        back until its last byte arrives.
        """
        if isinstance(chunk, dict):
            chunk = chunk.get("raw", "")
        if isinstance(chunk, bytes):
            text = self._held + self._bytes.decode(chunk)
            pending, _ = self._bytes.getstate()
            if pending:
                self._held = text
                return []
            self._held = ""
            chunk = text
        if "\n" in chunk:
            return self.feed_text(chunk)
        event = self.feed_line(chunk)
        return [event] if event is not None else []

    def close(self) -> List[SSEEvent]:
        """End of input: emit whatever event is still pending."""
        events = []
        held = self._held + self._bytes.decode(b"", final=True)
        self._held = ""
        if held:
            events.extend(self.feed(held))
        if self._partial:
            event = self.feed_line(self._partial)
            self._partial = ""
            if event is not None:
                events.append(event)
        event = self._flush()
        if event is not None:
            events.append(event)
        return events

    def _flush(self) -> Optional[SSEEvent]:
        if not self._data:
            self._event = None
            return None
        event = SSEEvent(data="\n".join(self._data), event=self._event, id=self._id)
        self._data = []
        self._event = None
        return event


def format_event(data: Union[str, Dict[str, Any]], event: Optional[str] = None, id: Optional[str] = None) -> str:
    """Frame one SSE event (terminated by a blank line)."""
    if not isinstance(data, str):
        data = json.dumps(data)
    out = []
    if id is not None:
        out.append(f"id: {id}\n")
    if event is not None:
        out.append(f"event: {event}\n")
    for line in data.split("\n"):
        out.append(f"data: {line}\n")
    out.append("\n")
    return "".join(out)


def format_done() -> str:
    return format_event(DONE)
