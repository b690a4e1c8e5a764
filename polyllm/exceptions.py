from typing import Any, Dict, List, Optional


class PolyLLMError(Exception):
    """Base exception for all polyllm errors."""
    pass

class AuthenticationError(PolyLLMError):
    """Raised when API credentials are invalid (401/403)."""
    pass

class RateLimitError(PolyLLMError):
    """Raised when API rate limit is exceeded (429)."""
    pass

class ProviderError(PolyLLMError):
    """Raised when the provider returns a 5xx error or other API failure."""
    pass

class InvalidRequestError(PolyLLMError):
    """Raised when the request is malformed (400)."""
    pass

class NetworkError(PolyLLMError):
    """Raised when network connection fails."""
    pass

class ResourceFetchError(PolyLLMError):
    """Raised when remote content (image/file URL) cannot be materialized into bytes."""
    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url

class UnsupportedDialectOperation(PolyLLMError):
    """Raised when a value cannot be rendered into a dialect without a prior transform."""
    def __init__(self, message: str, dialect: Optional[str] = None):
        super().__init__(message)
        self.dialect = dialect

class StreamTransportError(PolyLLMError):
    """
    Raised when the transport fails mid-stream.
    Carries whatever content and tool calls had accumulated so the caller
    can decide whether the partial result is usable.
    """
    def __init__(
        self,
        message: str,
        partial_content: str = "",
        partial_tool_calls: Optional[List[Dict[str, Any]]] = None,
        usage: Optional[Any] = None,
    ):
        super().__init__(message)
        self.partial_content = partial_content
        self.partial_tool_calls = partial_tool_calls or []
        self.usage = usage


class StructuredOutputError(PolyLLMError):
    """Base class for structured output failures."""
    pass

class StructuredOutputEmptyError(StructuredOutputError):
    """Raised when no usable content was returned for a typed schema."""
    pass

class SchemaValidationMismatch(StructuredOutputError):
    """Raised when hydration cannot satisfy a required, non-nullable field."""
    def __init__(self, message: str, missing_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = missing_fields or []
