"""OpenAI-compatible chat completions adapter (also used for every relay)."""

import json
from typing import Any, Dict, Optional

from .base import (
    AdapterConfig,
    AdapterRequest,
    BaseChatAdapter,
    Provider,
    StreamChunk,
    dig,
)


class OpenAIAdapter(BaseChatAdapter):
    """Chat completions dialect: system + user message array, Bearer auth."""

    provider = Provider.OPENAI
    default_base_url = "https://api.openai.com"
    official_hosts = ["api.openai.com"]
    small_model = "gpt-4o-mini"

    def build_request(self, config: AdapterConfig, stream: bool = True) -> AdapterRequest:
        base = self.resolve_base_url(config)

        payload = {
            "model": config.model,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": stream,
            "messages": [
                {"role": "system", "content": config.system_prompt},
                {"role": "user", "content": config.user_prompt},
            ],
        }

        return AdapterRequest(
            url=f"{base}/v1/chat/completions",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.api_key}",
            },
            body=json.dumps(payload, ensure_ascii=False),
        )

    def map_stream_event(self, parsed: Dict[str, Any]) -> Optional[StreamChunk]:
        content = dig(parsed, "choices", 0, "delta", "content")
        if isinstance(content, str) and content:
            return StreamChunk.text(content)
        return None

    def extract_completion_text(self, data: Any) -> str:
        content = dig(data, "choices", 0, "message", "content")
        return content if isinstance(content, str) else ""
