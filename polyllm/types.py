import base64
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import dialects
from .exceptions import UnsupportedDialectOperation
from .fetch import fetch_resource, guess_media_type

logger = logging.getLogger("polyllm.types")


class _Value(BaseModel):
    """Immutable value object."""
    model_config = ConfigDict(frozen=True)


def _data_uri(media_type: str, b64: str) -> str:
    return f"data:{media_type};base64,{b64}"


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

class Text(_Value):
    type: Literal["text"] = "text"
    text: str

    def render_for(self, dialect: str) -> Dict[str, Any]:
        if dialects.resolve_dialect(dialect) == dialects.GOOGLE:
            return {"text": self.text}
        return {"type": "text", "text": self.text}


class Image(_Value):
    """
    An image referenced by remote URL or carried inline as base64.
    Rendering never fetches; dialects that need inline bytes require
    an explicit `fetch()` first.
    """
    type: Literal["image"] = "image"
    url: Optional[str] = None
    base64_data: Optional[str] = None
    media_type: str = "image/jpeg"
    detail: Optional[str] = None

    @model_validator(mode="after")
    def _check_source(self) -> "Image":
        if not self.url and not self.base64_data:
            raise ValueError("Image must have url or base64_data")
        return self

    @classmethod
    def from_url(cls, url: str, detail: Optional[str] = None) -> "Image":
        return cls(url=url, media_type=guess_media_type(url, "image/jpeg"), detail=detail)

    @classmethod
    def from_base64(cls, data: str, media_type: str = "image/jpeg") -> "Image":
        return cls(base64_data=data, media_type=media_type)

    @classmethod
    def from_bytes(cls, data: bytes, media_type: str = "image/jpeg") -> "Image":
        return cls(base64_data=base64.b64encode(data).decode("utf-8"), media_type=media_type)

    @classmethod
    def from_path(cls, path: str) -> "Image":
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Image not found at {path}")
        with open(p, "rb") as f:
            return cls.from_bytes(f.read(), guess_media_type(path, "image/jpeg"))

    @property
    def is_inline(self) -> bool:
        return bool(self.base64_data)

    def fetch(self, client: Optional[httpx.Client] = None) -> "Image":
        """
        Materialize a URL-only image into inline base64.
        Returns a new Image; raises ResourceFetchError on failure.
        """
        if self.is_inline:
            return self
        content, media_type = fetch_resource(self.url, client=client)
        if not media_type.startswith("image/"):
            media_type = self.media_type
        return Image(
            base64_data=base64.b64encode(content).decode("utf-8"),
            media_type=media_type,
            detail=self.detail,
        )

    def render_for(self, dialect: str) -> Dict[str, Any]:
        d = dialects.resolve_dialect(dialect)
        if d == dialects.OPENAI:
            url = _data_uri(self.media_type, self.base64_data) if self.is_inline else self.url
            payload: Dict[str, Any] = {"url": url}
            if self.detail:
                payload["detail"] = self.detail
            return {"type": "image_url", "image_url": payload}

        if not self.is_inline:
            raise UnsupportedDialectOperation(
                f"The {d} dialect requires inline image bytes; call Image.fetch() before rendering {self.url}",
                dialect=d,
            )
        if d == dialects.ANTHROPIC:
            return {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": self.media_type,
                    "data": self.base64_data,
                },
            }
        return {"inlineData": {"mimeType": self.media_type, "data": self.base64_data}}


class File(_Value):
    """An inline document (PDF, text, spreadsheet...)."""
    type: Literal["file"] = "file"
    base64_data: str
    media_type: str = "application/octet-stream"
    filename: str = "file"

    @classmethod
    def from_base64(cls, data: str, media_type: str, filename: str) -> "File":
        return cls(base64_data=data, media_type=media_type, filename=filename)

    @classmethod
    def from_bytes(cls, data: bytes, media_type: str, filename: str) -> "File":
        return cls(
            base64_data=base64.b64encode(data).decode("utf-8"),
            media_type=media_type,
            filename=filename,
        )

    @classmethod
    def from_path(cls, path: str) -> "File":
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(p, "rb") as f:
            return cls.from_bytes(f.read(), guess_media_type(path), p.name)

    @classmethod
    def from_url(cls, url: str, client: Optional[httpx.Client] = None) -> "File":
        """Fetch a remote document and carry it inline."""
        content, media_type = fetch_resource(url, client=client)
        filename = Path(httpx.URL(url).path).name or "file"
        return cls.from_bytes(content, media_type, filename)

    def render_for(self, dialect: str) -> Dict[str, Any]:
        d = dialects.resolve_dialect(dialect)
        if d == dialects.ANTHROPIC:
            return {
                "type": "document",
                "source": {
                    "type": "base64",
                    "media_type": self.media_type,
                    "data": self.base64_data,
                },
            }
        if d == dialects.GOOGLE:
            return {"inlineData": {"mimeType": self.media_type, "data": self.base64_data}}
        return {
            "type": "file",
            "file": {
                "filename": self.filename,
                "file_data": _data_uri(self.media_type, self.base64_data),
            },
        }


Content = Union[Text, Image, File]
ContentPart = Union[str, Text, Image, File]


def render_part(part: ContentPart, dialect: str) -> Dict[str, Any]:
    if isinstance(part, str):
        part = Text(text=part)
    return part.render_for(dialect)


# ---------------------------------------------------------------------------
# Tool calls & usage
# ---------------------------------------------------------------------------

class ToolCall(_Value):
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    raw_arguments: Optional[str] = None

    @classmethod
    def from_text(cls, id: str, name: str, arguments: Optional[str]) -> "ToolCall":
        """Build a ToolCall from a JSON argument string, keeping the verbatim text."""
        text = arguments or ""
        parsed: Dict[str, Any] = {}
        if text.strip():
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                logger.warning(f"Tool call {id} ({name}) has unparsable arguments: {e}")
            else:
                if isinstance(value, dict):
                    parsed = value
                else:
                    logger.warning(f"Tool call {id} ({name}) arguments are not an object: {text!r}")
        return cls(id=id, name=name, arguments=parsed, raw_arguments=text)

    def arguments_json(self) -> str:
        """Arguments as the JSON text a vendor expects when the call is echoed back."""
        if self.raw_arguments is not None and self.raw_arguments.strip() and self.arguments:
            return self.raw_arguments
        return json.dumps(self.arguments)


class Usage(_Value):
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cache_read_input_tokens: int = Field(default=0, ge=0)
    cache_creation_input_tokens: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _default_total(cls, data: Any) -> Any:
        # total = prompt + completion unless the vendor reported its own total
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if v is not None}
            if "total_tokens" not in data:
                data["total_tokens"] = data.get("prompt_tokens", 0) + data.get("completion_tokens", 0)
        return data


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    FUNCTION_CALL = "function_call"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class BaseMessage(_Value):
    role: str
    content: Union[str, List[ContentPart]]
    name: Optional[str] = None
    cache_control: Optional[Literal["ephemeral"]] = None

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(
            p if isinstance(p, str) else p.text
            for p in self.content
            if isinstance(p, (str, Text))
        )

    def render_for(self, dialect: str) -> Dict[str, Any]:
        """Serialize this message into one vendor dialect's message object."""
        d = dialects.resolve_dialect(dialect)
        if d == dialects.ANTHROPIC:
            self._require_in_band(d)
            return self._render_anthropic()
        if d == dialects.GOOGLE:
            self._require_in_band(d)
            return self._render_google()
        return self._render_openai()

    def _require_in_band(self, dialect: str) -> None:
        if self.role == "system":
            raise UnsupportedDialectOperation(
                f"System messages are sent out-of-band in the {dialect} dialect; the adapter must extract them",
                dialect=dialect,
            )

    def _render_openai(self) -> Dict[str, Any]:
        formatted: Dict[str, Any] = {"role": self.role}
        if isinstance(self.content, str):
            formatted["content"] = self.content
        else:
            formatted["content"] = [render_part(p, dialects.OPENAI) for p in self.content]
        if self.name is not None:
            formatted["name"] = self.name
        return formatted

    def _anthropic_blocks(self) -> List[Dict[str, Any]]:
        parts = [self.content] if isinstance(self.content, str) else self.content
        blocks = [render_part(p, dialects.ANTHROPIC) for p in parts if p != ""]
        if self.cache_control and blocks:
            blocks[-1] = {**blocks[-1], "cache_control": {"type": self.cache_control}}
        return blocks

    def _render_anthropic(self) -> Dict[str, Any]:
        role = "assistant" if self.role == "assistant" else "user"
        if isinstance(self.content, str) and not self.cache_control:
            return {"role": role, "content": self.content}
        return {"role": role, "content": self._anthropic_blocks()}

    def _google_parts(self) -> List[Dict[str, Any]]:
        parts = [self.content] if isinstance(self.content, str) else self.content
        return [render_part(p, dialects.GOOGLE) for p in parts if p != ""]

    def _render_google(self) -> Dict[str, Any]:
        role = "model" if self.role == "assistant" else "user"
        return {"role": role, "parts": self._google_parts()}


class SystemMessage(BaseMessage):
    role: Literal["system"] = "system"


class UserMessage(BaseMessage):
    role: Literal["user"] = "user"

    @classmethod
    def with_image(cls, text: str, image: Union[str, Image]) -> "UserMessage":
        img = Image.from_url(image) if isinstance(image, str) else image
        return cls(content=[Text(text=text), img])

    @classmethod
    def with_files(cls, text: str, files: List[Union[str, File]]) -> "UserMessage":
        parts: List[ContentPart] = [Text(text=text)]
        for f in files:
            if isinstance(f, File):
                parts.append(f)
            elif f.startswith("http://") or f.startswith("https://"):
                parts.append(File.from_url(f))
            else:
                parts.append(File.from_path(f))
        return cls(content=parts)


class AssistantMessage(BaseMessage):
    role: Literal["assistant"] = "assistant"
    content: Union[str, List[ContentPart]] = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)

    @classmethod
    def from_response(cls, response: "ChatResponse") -> "AssistantMessage":
        return cls(content=response.content, tool_calls=list(response.tool_calls))

    def _render_openai(self) -> Dict[str, Any]:
        formatted = super()._render_openai()
        if self.tool_calls:
            if formatted["content"] == "":
                formatted["content"] = None
            formatted["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments_json()},
                }
                for tc in self.tool_calls
            ]
        return formatted

    def _render_anthropic(self) -> Dict[str, Any]:
        if not self.tool_calls:
            return super()._render_anthropic()
        blocks = self._anthropic_blocks()
        for tc in self.tool_calls:
            blocks.append({"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments})
        return {"role": "assistant", "content": blocks}

    def _render_google(self) -> Dict[str, Any]:
        parts = self._google_parts()
        for tc in self.tool_calls:
            parts.append({"functionCall": {"name": tc.name, "args": tc.arguments}})
        return {"role": "model", "parts": parts}


class ToolMessage(BaseMessage):
    role: Literal["tool"] = "tool"
    tool_call_id: str
    content: str

    def _render_openai(self) -> Dict[str, Any]:
        return {"role": "tool", "tool_call_id": self.tool_call_id, "content": self.content}

    def _render_anthropic(self) -> Dict[str, Any]:
        return {
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": self.tool_call_id,
                "content": self.content,
            }],
        }

    def _render_google(self) -> Dict[str, Any]:
        fname = self.name or "unknown_tool"
        return {
            "role": "function",
            "parts": [{
                "functionResponse": {
                    "name": fname,
                    "response": {"name": fname, "content": self.content},
                }
            }],
        }


# ---------------------------------------------------------------------------
# Requests & responses
# ---------------------------------------------------------------------------

class ChatParams(BaseModel):
    """Canonical request parameters, independent of any vendor."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    model: str
    messages: List[BaseMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Optional[Union[str, List[str]]] = None
    tools: Optional[List[Any]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    response_schema: Optional[Any] = None
    stream: bool = False
    options: Dict[str, Any] = Field(default_factory=dict)

    @property
    def stop_sequences(self) -> Optional[List[str]]:
        if self.stop is None:
            return None
        return [self.stop] if isinstance(self.stop, str) else list(self.stop)


class ChatResponse(_Value):
    """Standardized chat response from any provider."""
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.content

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class TextResponse(_Value):
    text: str
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None
    id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_chat(cls, response: ChatResponse) -> "TextResponse":
        return cls(
            text=response.content,
            finish_reason=response.finish_reason,
            usage=response.usage,
            id=response.id,
            model=response.model,
            provider=response.provider,
            raw=response.raw,
        )


class StructuredResponse(_Value):
    """`object` is a typed instance when the schema has a target shape, else a dict."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    object: Any
    text: str = ""
    usage: Optional[Usage] = None
    id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class ToolCallDelta(_Value):
    """
    One fragment of a streamed tool call.
    `index` keys the call within the stream; None means the fragment is a
    complete call of its own (vendors that never split calls).
    """
    index: Optional[int] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: str = ""


class StreamDelta(_Value):
    """Canonical form of one vendor stream event."""
    text: str = ""
    tool_calls: List[ToolCallDelta] = Field(default_factory=list)
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None
    id: Optional[str] = None
    model: Optional[str] = None
