from .client import Client
from .dialects import ANTHROPIC, GOOGLE, OPENAI, resolve_dialect
from .models.chat import ChatModel
from .providers import (
    AnthropicProvider,
    GoogleProvider,
    MistralProvider,
    OllamaProvider,
    OpenAIProvider,
    OpenRouterProvider,
    Provider,
    XAIProvider,
)
from .streaming import AsyncChatStream, ChatStream, StreamAggregator, StreamProgress
from .structured import Hydrator, Schema, Shape, ShapeBuilder, ShapeRegistry, shape_of
from .testing import MockProvider, MockTransport
from .tools.base import Tool
from .types import (
    AssistantMessage,
    ChatParams,
    ChatResponse,
    File,
    FinishReason,
    Image,
    StreamDelta,
    StructuredResponse,
    SystemMessage,
    Text,
    TextResponse,
    ToolCall,
    ToolCallDelta,
    ToolMessage,
    Usage,
    UserMessage,
)
from .exceptions import (
    AuthenticationError,
    InvalidRequestError,
    NetworkError,
    PolyLLMError,
    ProviderError,
    RateLimitError,
    ResourceFetchError,
    SchemaValidationMismatch,
    StreamTransportError,
    StructuredOutputEmptyError,
    StructuredOutputError,
    UnsupportedDialectOperation,
)

__version__ = "0.1.0"

__all__ = [
    "ANTHROPIC",
    "GOOGLE",
    "OPENAI",
    "AnthropicProvider",
    "AssistantMessage",
    "AsyncChatStream",
    "AuthenticationError",
    "ChatModel",
    "ChatParams",
    "ChatResponse",
    "ChatStream",
    "Client",
    "File",
    "FinishReason",
    "GoogleProvider",
    "Hydrator",
    "Image",
    "InvalidRequestError",
    "MistralProvider",
    "MockProvider",
    "MockTransport",
    "NetworkError",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "PolyLLMError",
    "Provider",
    "ProviderError",
    "RateLimitError",
    "ResourceFetchError",
    "Schema",
    "SchemaValidationMismatch",
    "Shape",
    "ShapeBuilder",
    "ShapeRegistry",
    "StreamAggregator",
    "StreamDelta",
    "StreamProgress",
    "StreamTransportError",
    "StructuredOutputEmptyError",
    "StructuredOutputError",
    "StructuredResponse",
    "SystemMessage",
    "Text",
    "TextResponse",
    "Tool",
    "ToolCall",
    "ToolCallDelta",
    "ToolMessage",
    "UnsupportedDialectOperation",
    "Usage",
    "UserMessage",
    "XAIProvider",
    "resolve_dialect",
    "shape_of",
]
