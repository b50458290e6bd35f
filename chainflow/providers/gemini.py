"""Google Gemini generateContent adapter."""

import json
from typing import Any, Dict, Optional
from urllib.parse import quote

from .base import (
    AdapterConfig,
    AdapterRequest,
    BaseChatAdapter,
    Provider,
    StreamChunk,
    dig,
)


class GeminiAdapter(BaseChatAdapter):
    """generateContent dialect: model-qualified URL, systemInstruction + contents."""

    provider = Provider.GEMINI
    default_base_url = "https://generativelanguage.googleapis.com"
    official_hosts = ["generativelanguage.googleapis.com"]
    small_model = "gemini-2.0-flash"

    def build_request(self, config: AdapterConfig, stream: bool = True) -> AdapterRequest:
        base = self.resolve_base_url(config)
        model = quote(config.model, safe="-._~/")

        if stream:
            url = f"{base}/v1beta/models/{model}:streamGenerateContent?alt=sse"
        else:
            url = f"{base}/v1beta/models/{model}:generateContent"

        payload = {
            "contents": [{"parts": [{"text": config.user_prompt}]}],
            "systemInstruction": {"parts": [{"text": config.system_prompt}]},
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_tokens,
            },
        }

        return AdapterRequest(
            url=url,
            headers={
                "Content-Type": "application/json",
                "x-goog-api-key": config.api_key,
            },
            body=json.dumps(payload, ensure_ascii=False),
        )

    def map_stream_event(self, parsed: Dict[str, Any]) -> Optional[StreamChunk]:
        text = dig(parsed, "candidates", 0, "content", "parts", 0, "text")
        if isinstance(text, str) and text:
            return StreamChunk.text(text)
        return None

    def extract_completion_text(self, data: Any) -> str:
        text = dig(data, "candidates", 0, "content", "parts", 0, "text")
        return text if isinstance(text, str) else ""
