"""Streaming chat gateway: validated request in, canonical chunks out."""

import logging
from typing import AsyncIterator, Optional, Tuple

from .. import config
from ..cancellation import CancellationToken, ensure_token
from ..errors import CancelledError, ChainflowError, UpstreamError
from ..providers.base import Provider, StreamChunk
from ..providers.registry import build_request, resolve_stream_format
from .optimizer import maybe_optimize_prompt
from .stream import normalize_stream
from .streams import StreamRegistry
from .transport import BaseTransport, HttpxTransport, UpstreamResponse
from .validation import ChatRequest

logger = logging.getLogger(__name__)


class ChatGateway:
    """
    Sends one chat request to its backend and normalizes the reply.

    The gateway never raises out of `stream_chat()`: failures become an
    `error` chunk followed by `done`, cancellation becomes a bare `done`.
    """

    def __init__(
        self,
        transport: Optional[BaseTransport] = None,
        streams: Optional[StreamRegistry] = None,
        optimize_timeout: float = config.OPTIMIZE_TIMEOUT,
        error_max_chars: int = config.UPSTREAM_ERROR_MAX_CHARS,
    ):
        self.transport = transport or HttpxTransport()
        self.streams = streams or StreamRegistry()
        self.optimize_timeout = optimize_timeout
        self.error_max_chars = error_max_chars

    async def open_upstream(
        self, request: ChatRequest, token: CancellationToken
    ) -> Tuple[UpstreamResponse, Provider]:
        """
        Run the optimization pre-pass and open the backend stream.

        Returns:
            (open 2xx response, dialect of its stream); the caller must aclose() it

        Raises:
            UpstreamError: Backend answered non-2xx (body already truncated)
            TransportError: Network failure
            InvalidEndpointError: Endpoint could not be used
            CancelledError: Token fired while waiting
        """
        prompt = await maybe_optimize_prompt(
            request, self.transport, timeout=self.optimize_timeout, token=token
        )
        http_request = build_request(request.provider, request.to_adapter_config(prompt))
        fmt = resolve_stream_format(request.provider, request.base_url)

        logger.info(f"Streaming {request.provider.value}/{request.model} (format={fmt.value})")
        upstream = await token.run(self.transport.open_stream(http_request))
        if upstream.ok:
            return upstream, fmt

        try:
            body = (await token.run(upstream.aread())).decode("utf-8", errors="replace")
        finally:
            await upstream.aclose()
        logger.warning(f"✗ Upstream {request.provider.value} returned {upstream.status_code}")
        raise UpstreamError(upstream.status_code, body[: self.error_max_chars])

    async def relay(
        self, upstream: UpstreamResponse, fmt: Provider, token: CancellationToken
    ) -> AsyncIterator[StreamChunk]:
        """Normalize an already-open 2xx response, closing it when done."""
        try:
            async for chunk in normalize_stream(token.iterate(upstream.aiter_bytes()), fmt):
                yield chunk
        except CancelledError:
            logger.info(f"Stream cancelled ({token.reason})")
            yield StreamChunk.done()
        except Exception as e:
            logger.error(f"✗ Stream failed: {e}")
            yield StreamChunk.error(str(e))
            yield StreamChunk.done()
        finally:
            await upstream.aclose()

    async def stream_chat(
        self, request: ChatRequest, token: Optional[CancellationToken] = None
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream canonical chunks for a validated request.

        Exactly one `done` chunk is always the last thing yielded.
        """
        token = ensure_token(token)
        try:
            upstream, fmt = await self.open_upstream(request, token)
        except CancelledError:
            yield StreamChunk.done()
            return
        except UpstreamError as e:
            yield StreamChunk.error(e.body or f"Upstream error: {e.status}")
            yield StreamChunk.done()
            return
        except ChainflowError as e:
            yield StreamChunk.error(str(e))
            yield StreamChunk.done()
            return
        except Exception as e:
            logger.error(f"✗ Unexpected gateway failure: {e}", exc_info=True)
            yield StreamChunk.error(str(e))
            yield StreamChunk.done()
            return

        async for chunk in self.relay(upstream, fmt, token):
            yield chunk

    async def stream_slot(self, slot: str, request: ChatRequest) -> AsyncIterator[StreamChunk]:
        """stream_chat() under a registry slot; starting the slot again cancels this stream."""
        token = self.streams.start(slot)
        try:
            async for chunk in self.stream_chat(request, token):
                yield chunk
        finally:
            self.streams.finish(slot, token)

    def cancel(self, slot: str) -> bool:
        return self.streams.cancel(slot)

    def cancel_all(self) -> int:
        return self.streams.cancel_all()
