"""Anthropic Messages API adapter."""

import json
from typing import Any, Dict, Optional

from .base import (
    AdapterConfig,
    AdapterRequest,
    BaseChatAdapter,
    EffortLevel,
    Provider,
    StreamChunk,
)

ANTHROPIC_VERSION = "2023-06-01"

# Extended-reasoning budget per effort level; lower levels send no thinking block
THINKING_BUDGETS = {
    EffortLevel.HIGH: 5000,
    EffortLevel.MAX: 10000,
}


class ClaudeAdapter(BaseChatAdapter):
    """Messages dialect: top-level system field, one user message, x-api-key auth."""

    provider = Provider.CLAUDE
    default_base_url = "https://api.anthropic.com"
    official_hosts = ["api.anthropic.com"]
    small_model = "claude-haiku-4-5"

    def build_request(self, config: AdapterConfig, stream: bool = True) -> AdapterRequest:
        base = self.resolve_base_url(config)

        payload: Dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "system": config.system_prompt,
            "messages": [{"role": "user", "content": config.user_prompt}],
            "stream": stream,
        }

        budget = THINKING_BUDGETS.get(EffortLevel(config.effort))
        if budget is not None:
            payload["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # Extended thinking only accepts temperature 1
            payload["temperature"] = 1

        return AdapterRequest(
            url=f"{base}/v1/messages",
            headers={
                "Content-Type": "application/json",
                "x-api-key": config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            body=json.dumps(payload, ensure_ascii=False),
        )

    def map_stream_event(self, parsed: Dict[str, Any]) -> Optional[StreamChunk]:
        if parsed.get("type") != "content_block_delta":
            return None

        delta = parsed.get("delta")
        if not isinstance(delta, dict):
            return None
        if delta.get("type") == "thinking_delta":
            return StreamChunk.thinking(delta.get("thinking") or "")
        if delta.get("type") == "text_delta":
            return StreamChunk.text(delta.get("text") or "")
        return None

    def extract_completion_text(self, data: Any) -> str:
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            return ""
        # With thinking enabled the first block is the reasoning, not the answer
        for block in blocks:
            if isinstance(block, dict) and block.get("type", "text") == "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    return text
        return ""
