"""Provider-agnostic streaming gateway."""

from .gateway import ChatGateway
from .optimizer import maybe_optimize_prompt
from .probe import ProbeResult, probe_models, sanitize_models
from .stream import StreamNormalizer, map_stream_chunk, normalize_stream
from .streams import StreamRegistry
from .transport import BaseTransport, HttpxTransport, UpstreamResponse
from .validation import (
    ChatRequest,
    ValidationResult,
    parse_chat_body,
    parse_json_body,
    validate_chat_payload,
)

__all__ = [
    "ChatGateway",
    "maybe_optimize_prompt",
    "ProbeResult",
    "probe_models",
    "sanitize_models",
    "StreamNormalizer",
    "map_stream_chunk",
    "normalize_stream",
    "StreamRegistry",
    "BaseTransport",
    "HttpxTransport",
    "UpstreamResponse",
    "ChatRequest",
    "ValidationResult",
    "parse_chat_body",
    "parse_json_body",
    "validate_chat_payload",
]
