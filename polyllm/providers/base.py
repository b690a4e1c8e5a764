import logging
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple, Union

from ..exceptions import ProviderError
from ..types import ChatParams, ChatResponse, StreamDelta

logger = logging.getLogger("polyllm.providers")

# Name of the forced tool used for structured output in tool-based dialects.
STRUCTURED_TOOL = "extract_data"


class Provider(Protocol):
    """
    Protocol that defines how to talk to one AI vendor.
    It turns canonical requests into the vendor's wire payload and maps the
    vendor's responses and stream events back into canonical values.
    """
    name: str
    dialect: str

    @property
    def base_url(self) -> str:
        """Return the base URL for this provider."""
        ...

    @property
    def headers(self) -> Dict[str, str]:
        """Return the headers for this provider."""
        ...

    def build_request(self, params: ChatParams) -> Tuple[str, Dict[str, Any]]:
        """
        Prepare the endpoint and JSON payload for the request.
        Returns (endpoint, json_payload).
        """
        ...

    def map_response(self, response_data: Dict[str, Any]) -> ChatResponse:
        """Map a complete vendor response into a ChatResponse."""
        ...

    def map_stream_chunk(self, chunk: Dict[str, Any]) -> Optional[StreamDelta]:
        """Map one decoded stream event; None for events that carry nothing."""
        ...

    def structured_output(self, response: ChatResponse) -> Union[str, Dict[str, Any]]:
        """Where this vendor puts structured output: text to extract from, or decoded arguments."""
        ...


def drop_none(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of a payload without None-valued entries."""
    return {k: v for k, v in payload.items() if v is not None}


def normalize_finish_reason(code: Optional[str], table: Mapping[str, str]) -> Optional[str]:
    """Canonical finish reason for a vendor code; unknown codes pass through unchanged."""
    if code is None:
        return None
    if code not in table:
        logger.debug(f"Unrecognized finish reason '{code}' passed through")
        return code
    return table[code]


def raise_for_error_body(data: Mapping[str, Any], vendor: str) -> None:
    """Raise ProviderError when a 2xx body (or stream event) is actually an error report."""
    error = data.get("error")
    if error is None and data.get("type") != "error":
        return
    if isinstance(error, Mapping):
        message = error.get("message") or error.get("type") or str(error)
    else:
        message = str(error)
    raise ProviderError(f"{vendor} reported an error: {message}")
