import logging
from typing import Any, AsyncIterator, Dict, Iterator, Optional

import httpx

from ..exceptions import (
    AuthenticationError,
    InvalidRequestError,
    NetworkError,
    PolyLLMError,
    ProviderError,
    RateLimitError,
)
from .base import Transport

logger = logging.getLogger("polyllm.transport")

DEFAULT_TIMEOUT = 60.0


def _error_body(response: httpx.Response) -> str:
    try:
        return response.text
    except httpx.ResponseNotRead:
        try:
            response.read()
            return response.text
        except httpx.HTTPError:
            return "<Could not read error body>"


async def _error_body_async(response: httpx.Response) -> str:
    try:
        return response.text
    except httpx.ResponseNotRead:
        try:
            await response.aread()
            return response.text
        except httpx.HTTPError:
            return "<Could not read error body>"


class HTTPTransport(Transport):
    """
    HTTP transport using httpx.
    """
    def __init__(self, base_url: str = "", headers: Dict[str, str] = None, timeout: Optional[float] = None):
        self.base_url = base_url
        self.headers = headers
        self.timeout = timeout if timeout is not None else DEFAULT_TIMEOUT
        self.client = httpx.Client(base_url=base_url, headers=headers, timeout=self.timeout)
        self.aclient = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=self.timeout)

    @staticmethod
    def _kwargs(timeout: Optional[float]) -> Dict[str, Any]:
        return {"timeout": timeout} if timeout is not None else {}

    def _raise_status(self, status: int, body: str, context: str, cause: Exception):
        error_msg = f"{context}: {body}"
        logger.error(f"HTTP Error {status}: {error_msg}")
        if status in (401, 403):
            raise AuthenticationError(error_msg) from cause
        if status == 429:
            raise RateLimitError(error_msg) from cause
        if status in (400, 404, 422):
            raise InvalidRequestError(error_msg) from cause
        if status >= 500:
            raise ProviderError(error_msg) from cause
        raise PolyLLMError(f"HTTP {status}: {error_msg}") from cause

    def _raise_network(self, e: httpx.RequestError, context: str):
        logger.error(f"Network Error: {e}")
        raise NetworkError(f"{context}: {e}") from e

    def send(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        logger.debug(f"SEND {endpoint} payload={data}")
        try:
            response = self.client.post(endpoint, json=data, **self._kwargs(timeout))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._raise_status(e.response.status_code, _error_body(e.response), "Sync send failed", e)
        except httpx.RequestError as e:
            self._raise_network(e, "Sync send failed")
        return response.json()

    async def send_async(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        logger.debug(f"ASYNC SEND {endpoint} payload={data}")
        try:
            response = await self.aclient.post(endpoint, json=data, **self._kwargs(timeout))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._raise_status(e.response.status_code, await _error_body_async(e.response), "Async send failed", e)
        except httpx.RequestError as e:
            self._raise_network(e, "Async send failed")
        return response.json()

    def stream(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> Iterator[Dict[str, Any]]:
        logger.debug(f"STREAM {endpoint} payload={data}")
        try:
            with self.client.stream("POST", endpoint, json=data, **self._kwargs(timeout)) as response:
                if response.is_error:
                    response.read()
                    self._raise_status(response.status_code, response.text, "Stream failed", None)
                for line in response.iter_lines():
                    yield {"raw": line}
        except httpx.RequestError as e:
            self._raise_network(e, "Stream failed")

    async def stream_async(self, endpoint: str, data: Dict[str, Any], timeout: Optional[float] = None) -> AsyncIterator[Dict[str, Any]]:
        logger.debug(f"ASYNC STREAM {endpoint} payload={data}")
        try:
            async with self.aclient.stream("POST", endpoint, json=data, **self._kwargs(timeout)) as response:
                if response.is_error:
                    await response.aread()
                    self._raise_status(response.status_code, response.text, "Async stream failed", None)
                async for line in response.aiter_lines():
                    yield {"raw": line}
        except httpx.RequestError as e:
            self._raise_network(e, "Async stream failed")

    def close(self) -> None:
        self.client.close()

    async def aclose(self) -> None:
        await self.aclient.aclose()
