"""Outbound transport: the narrow seam between the gateway and the network.

The gateway only builds requests and interprets byte streams; anything that
opens sockets lives behind `BaseTransport`. `HttpxTransport` is the default
implementation over the shared pooled client in `chainflow.http_pool`.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from ..errors import ParseError, TransportError
from ..providers.base import AdapterRequest

logger = logging.getLogger(__name__)


class UpstreamResponse:
    """An open streaming response: status plus a byte iterator that must be closed."""

    def __init__(
        self,
        status_code: int,
        byte_iterator: Callable[[], AsyncIterator[bytes]],
        reader: Callable[[], Awaitable[bytes]],
        closer: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.status_code = status_code
        self._byte_iterator = byte_iterator
        self._reader = reader
        self._closer = closer

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        return self._byte_iterator()

    async def aread(self) -> bytes:
        return await self._reader()

    async def aclose(self) -> None:
        if self._closer is not None:
            await self._closer()


class BaseTransport(ABC):
    """Performs the actual network calls on behalf of the gateway."""

    @abstractmethod
    async def open_stream(self, request: AdapterRequest) -> UpstreamResponse:
        """
        POST a request and return once response headers arrive.

        Raises:
            TransportError: On network failure or timeout
        """
        pass

    @abstractmethod
    async def post_json(
        self, url: str, headers: Dict[str, str], body: str, timeout: float
    ) -> Tuple[int, Any]:
        """
        POST and decode a JSON answer.

        Returns:
            (status_code, decoded body); body is None for non-2xx answers

        Raises:
            TransportError: On network failure or timeout
            ParseError: When a 2xx body is not JSON
        """
        pass

    @abstractmethod
    async def get_json(self, url: str, headers: Dict[str, str], timeout: float) -> Tuple[int, Any]:
        """GET and decode a JSON answer. Same contract as post_json()."""
        pass


class HttpxTransport(BaseTransport):
    """Transport over an httpx.AsyncClient (the shared pool unless one is given)."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        from .. import http_pool

        return http_pool.get_http_client()

    async def open_stream(self, request: AdapterRequest) -> UpstreamResponse:
        http_request = self.client.build_request(
            "POST", request.url, headers=request.headers, content=request.body.encode("utf-8")
        )
        try:
            response = await self.client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {_safe_url(request.url)} failed: {e}") from e

        async def iter_bytes() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_bytes():
                    yield chunk
            except httpx.HTTPError as e:
                raise TransportError(f"Stream read failed: {e}") from e

        async def read() -> bytes:
            try:
                return await response.aread()
            except httpx.HTTPError as e:
                raise TransportError(f"Response read failed: {e}") from e

        return UpstreamResponse(response.status_code, iter_bytes, read, response.aclose)

    async def post_json(
        self, url: str, headers: Dict[str, str], body: str, timeout: float
    ) -> Tuple[int, Any]:
        try:
            response = await self.client.post(
                url, headers=headers, content=body.encode("utf-8"), timeout=timeout
            )
        except httpx.HTTPError as e:
            raise TransportError(f"POST {_safe_url(url)} failed: {e}") from e
        return _decode(response)

    async def get_json(self, url: str, headers: Dict[str, str], timeout: float) -> Tuple[int, Any]:
        try:
            response = await self.client.get(url, headers=headers, timeout=timeout)
        except httpx.HTTPError as e:
            raise TransportError(f"GET {_safe_url(url)} failed: {e}") from e
        return _decode(response)


def _decode(response: httpx.Response) -> Tuple[int, Any]:
    if not response.is_success:
        return response.status_code, None
    try:
        return response.status_code, response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Response from {_safe_url(str(response.url))} is not JSON: {e}") from e


def _safe_url(url: str) -> str:
    """Drop the query string so keys passed as ?key= never reach the logs."""
    return url.split("?", 1)[0]
