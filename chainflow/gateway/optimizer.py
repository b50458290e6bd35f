"""Optional prompt-optimization pre-pass.

One non-streaming round trip that rewrites the user prompt before the real
request. It never escalates: any failure falls back to the original prompt.
"""

import logging
from dataclasses import replace
from typing import Optional

from .. import config
from ..cancellation import CancellationToken, ensure_token
from ..errors import CancelledError
from ..providers.base import EffortLevel
from ..providers.registry import build_request, get_adapter, is_relay, resolve_stream_format
from .transport import BaseTransport
from .validation import ChatRequest

logger = logging.getLogger(__name__)

OPTIMIZE_SYSTEM_PROMPT = (
    "You are a prompt optimization expert. Rewrite the user's prompt so it is "
    "clearer, more specific and easier for an AI model to follow. Output only "
    "the optimized prompt, with no explanation."
)
OPTIMIZE_TEMPERATURE = 0.3
OPTIMIZE_MAX_TOKENS = 1024


def optimizer_model(request: ChatRequest) -> str:
    """Relays may not serve the provider's small model, so they reuse the request model."""
    if is_relay(request.provider, request.base_url):
        return request.model
    return get_adapter(request.provider).small_model


async def maybe_optimize_prompt(
    request: ChatRequest,
    transport: BaseTransport,
    timeout: float = config.OPTIMIZE_TIMEOUT,
    token: Optional[CancellationToken] = None,
) -> str:
    """
    Return the user prompt to send, optimized when the request asks for it.

    Args:
        request: Validated chat request
        transport: Transport used for the single round trip
        timeout: Seconds before giving up and keeping the original prompt
        token: Cancellation token; cancellation is re-raised, not swallowed

    Returns:
        Optimized prompt, or the original one on any failure or empty answer
    """
    if not request.optimize_prompt:
        return request.user_prompt

    token = ensure_token(token)
    original = request.user_prompt

    try:
        adapter_config = replace(
            request.to_adapter_config(f"Please optimize this prompt:\n{original}"),
            model=optimizer_model(request),
            system_prompt=OPTIMIZE_SYSTEM_PROMPT,
            temperature=OPTIMIZE_TEMPERATURE,
            max_tokens=OPTIMIZE_MAX_TOKENS,
            effort=EffortLevel.LOW,
        )
        http_request = build_request(request.provider, adapter_config, stream=False)

        status, data = await token.run(
            transport.post_json(http_request.url, http_request.headers, http_request.body, timeout)
        )
        if data is None:
            logger.warning(f"Prompt optimization got status {status}, keeping original prompt")
            return original

        fmt = resolve_stream_format(request.provider, request.base_url)
        optimized = get_adapter(fmt).extract_completion_text(data).strip()
        if not optimized:
            return original

        logger.info(f"✓ Prompt optimized ({len(original)} → {len(optimized)} chars)")
        return optimized

    except CancelledError:
        raise
    except Exception as e:
        logger.warning(f"✗ Prompt optimization failed, keeping original prompt: {e}")
        return original
