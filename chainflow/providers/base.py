"""Base abstractions shared by the chat backend adapters."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from ..errors import InvalidEndpointError

MAX_BASE_URL_LEN = 2048


class Provider(str, Enum):
    """Closed set of supported chat backends."""

    OPENAI = "openai"
    CLAUDE = "claude"
    GEMINI = "gemini"


class EffortLevel(str, Enum):
    """Coarse reasoning-intensity knob that shapes the outgoing request."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    MAX = "max"


class ChunkType(str, Enum):
    TEXT = "text"
    THINKING = "thinking"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class StreamChunk:
    """Canonical streamed event, identical for every backend."""

    type: ChunkType
    content: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type.value, "content": self.content}

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"

    @classmethod
    def text(cls, content: str) -> "StreamChunk":
        return cls(ChunkType.TEXT, content)

    @classmethod
    def thinking(cls, content: str) -> "StreamChunk":
        return cls(ChunkType.THINKING, content)

    @classmethod
    def error(cls, content: str) -> "StreamChunk":
        return cls(ChunkType.ERROR, content)

    @classmethod
    def done(cls) -> "StreamChunk":
        return cls(ChunkType.DONE, "")


@dataclass
class AdapterConfig:
    """Everything an adapter needs to build one backend request."""

    api_key: str
    model: str
    system_prompt: str
    user_prompt: str
    temperature: float = 0.7
    max_tokens: int = 4096
    effort: EffortLevel = EffortLevel.MEDIUM
    base_url: Optional[str] = None


@dataclass
class AdapterRequest:
    """A fully built backend request: URL, headers and a JSON-encoded body."""

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def json_body(self) -> Dict[str, Any]:
        return json.loads(self.body) if self.body else {}


def normalize_base_url(base_url: Optional[str], fallback: str) -> Optional[str]:
    """
    Trim and check a custom endpoint.

    Args:
        base_url: User-supplied endpoint (may be None or blank)
        fallback: Used when base_url is blank

    Returns:
        The URL without trailing slashes, "" when both are blank,
        or None if the URL is too long or not http(s)
    """
    raw = base_url.strip() if isinstance(base_url, str) and base_url.strip() else fallback
    if not raw:
        return "" if fallback == "" else None
    if len(raw) > MAX_BASE_URL_LEN:
        return None

    try:
        parts = urlsplit(raw)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return raw.rstrip("/")


def url_host(url: str) -> Optional[str]:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


class BaseChatAdapter(ABC):
    """Builds requests for one backend dialect and reads its responses."""

    provider: Provider
    default_base_url: str
    official_hosts: List[str]
    # Cheap model used for the prompt-optimization pre-pass on official endpoints
    small_model: str

    def resolve_base_url(self, config: AdapterConfig) -> str:
        base = normalize_base_url(config.base_url, self.default_base_url)
        if not base:
            raise InvalidEndpointError()
        return base

    @abstractmethod
    def build_request(self, config: AdapterConfig, stream: bool = True) -> AdapterRequest:
        """
        Build the backend request.

        Args:
            config: Adapter configuration
            stream: False for a single non-streaming round trip

        Returns:
            AdapterRequest with url, headers and JSON body
        """
        pass

    @abstractmethod
    def map_stream_event(self, parsed: Dict[str, Any]) -> Optional[StreamChunk]:
        """
        Map one decoded stream record to a canonical chunk.

        Returns:
            StreamChunk, or None when the record carries nothing to emit
        """
        pass

    @abstractmethod
    def extract_completion_text(self, data: Any) -> str:
        """Pull the answer text out of a non-streaming response body ("" if absent)."""
        pass

    def is_official_host(self, base_url: str) -> bool:
        return url_host(base_url) in self.official_hosts


def dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None on any missing step."""
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[key] if isinstance(key, int) else current.get(key)
        if current is None:
            return None
    return current
