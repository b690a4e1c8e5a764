from typing import Any, AsyncIterator, Dict, Iterator, Optional, Protocol


class Transport(Protocol):
    """
    Abstract interface for network transport.

    `stream` yields one {"raw": line} chunk per received line, blank lines
    included, so SSE event boundaries survive. Failures surface as
    exceptions from the iterator.
    """

    def send(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send a synchronous request."""
        ...

    async def send_async(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send an asynchronous request."""
        ...

    def stream(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Iterator[Dict[str, Any]]:
        """Stream a synchronous request."""
        ...

    def stream_async(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> AsyncIterator[Dict[str, Any]]:
        """Stream an asynchronous request."""
        ...
