"""Chat streaming and model discovery endpoints."""

import logging
import uuid
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse

from .. import config
from ..dependencies import get_gateway
from ..errors import CancelledError, UpstreamError, ValidationError
from ..gateway import ChatGateway, parse_chat_body, parse_json_body, probe_models
from ..gateway.validation import MAX_API_KEY_LEN
from ..pipeline.schema import ProbeModelsRequest
from ..providers.base import StreamChunk, normalize_base_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


@router.post("/chat")
async def chat(request: Request, gateway: ChatGateway = Depends(get_gateway)):
    """
    Stream one chat completion as server-sent canonical chunks.

    Pre-flight failures answer with their status and a plain-text message.
    A non-2xx backend answer received before streaming starts is passed
    through with its status and (truncated) body. Send an `X-Stream-Slot`
    header to make the stream cancellable via /api/chat/{slot}/cancel.
    """
    validated = parse_chat_body(await request.body())
    if not validated.ok:
        return PlainTextResponse(validated.message, status_code=validated.status)
    chat_request = validated.payload

    slot = request.headers.get("x-stream-slot") or uuid.uuid4().hex
    token = gateway.streams.start(slot)
    try:
        upstream, fmt = await gateway.open_upstream(chat_request, token)
    except UpstreamError as e:
        gateway.streams.finish(slot, token)
        return PlainTextResponse(e.body or f"Upstream error: {e.status}", status_code=e.status)
    except ValidationError as e:
        gateway.streams.finish(slot, token)
        return PlainTextResponse(e.message, status_code=e.status)
    except CancelledError:
        gateway.streams.finish(slot, token)
        return _sse([StreamChunk.done()])
    except Exception as e:
        gateway.streams.finish(slot, token)
        logger.error(f"✗ Chat upstream failed: {e}")
        return PlainTextResponse(str(e), status_code=502)

    async def event_generator() -> AsyncIterator[str]:
        try:
            async for chunk in gateway.relay(upstream, fmt, token):
                yield chunk.to_sse()
        finally:
            gateway.streams.finish(slot, token)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "X-Stream-Slot": slot},
    )


@router.post("/chat/{slot}/cancel")
async def cancel_chat(slot: str, gateway: ChatGateway = Depends(get_gateway)):
    """Abort the live stream for a slot, if any."""
    return {"cancelled": gateway.cancel(slot)}


@router.post("/probe-models")
async def probe(request: Request, gateway: ChatGateway = Depends(get_gateway)):
    """
    List the models a relay serves.

    Returns:
        {"models": [...], "endpoint": url, "recommended": {...}} on success, plus
        "matched" when the body names a model the relay serves;
        {"models": [], "error": msg} on failure
    """
    try:
        data = parse_json_body(await request.body(), config.MAX_PROBE_BODY_BYTES)
    except ValidationError as e:
        return JSONResponse({"error": e.message}, status_code=e.status)
    if not isinstance(data, dict):
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    body = ProbeModelsRequest(
        baseUrl=data["baseUrl"] if isinstance(data.get("baseUrl"), str) else "",
        apiKey=data["apiKey"].strip() if isinstance(data.get("apiKey"), str) else "",
        model=data["model"].strip() if isinstance(data.get("model"), str) else None,
    )
    if (
        not normalize_base_url(body.base_url, "")
        or not body.api_key
        or len(body.api_key) > MAX_API_KEY_LEN
    ):
        return JSONResponse({"error": "Missing baseUrl or apiKey"}, status_code=400)

    result = await probe_models(
        body.base_url,
        body.api_key,
        gateway.transport,
        timeout=config.PROBE_TIMEOUT,
        model=body.model or None,
    )
    return result.to_dict()


def _sse(chunks) -> StreamingResponse:
    async def gen() -> AsyncIterator[str]:
        for chunk in chunks:
            yield chunk.to_sse()

    return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)
