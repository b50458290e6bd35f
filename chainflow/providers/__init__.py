"""Backend adapters for the OpenAI, Claude and Gemini chat dialects."""

from .base import (
    AdapterConfig,
    AdapterRequest,
    BaseChatAdapter,
    ChunkType,
    EffortLevel,
    Provider,
    StreamChunk,
    normalize_base_url,
)
from .registry import (
    DEFAULT_BASE_URLS,
    OFFICIAL_HOSTS,
    build_request,
    get_adapter,
    is_relay,
    resolve_stream_format,
)

__all__ = [
    "AdapterConfig",
    "AdapterRequest",
    "BaseChatAdapter",
    "ChunkType",
    "EffortLevel",
    "Provider",
    "StreamChunk",
    "normalize_base_url",
    "DEFAULT_BASE_URLS",
    "OFFICIAL_HOSTS",
    "build_request",
    "get_adapter",
    "is_relay",
    "resolve_stream_format",
]
