"""Pre-flight validation of chat requests.

Every field is checked against an explicit bound before any network call.
The first failing check wins and nothing else happens.
"""

import json
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .. import config
from ..errors import ValidationError
from ..providers.base import AdapterConfig, EffortLevel, Provider, normalize_base_url

MAX_MODEL_LEN = 200
MAX_API_KEY_LEN = 1024
MAX_SYSTEM_PROMPT_LEN = 32 * 1024
MAX_USER_PROMPT_LEN = 128 * 1024
MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0
MIN_MAX_TOKENS = 1
MAX_MAX_TOKENS = 131072


@dataclass(frozen=True)
class ChatRequest:
    """Canonical, validated request to the gateway."""

    provider: Provider
    model: str
    api_key: str
    system_prompt: str
    user_prompt: str
    temperature: float
    max_tokens: int
    effort: EffortLevel
    base_url: Optional[str] = None
    optimize_prompt: bool = False

    def to_adapter_config(self, user_prompt: Optional[str] = None) -> AdapterConfig:
        return AdapterConfig(
            api_key=self.api_key,
            base_url=self.base_url,
            model=self.model,
            system_prompt=self.system_prompt,
            user_prompt=self.user_prompt if user_prompt is None else user_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            effort=self.effort,
        )

    def with_user_prompt(self, user_prompt: str) -> "ChatRequest":
        return replace(self, user_prompt=user_prompt)

    def to_payload(self) -> Dict[str, Any]:
        """Raw wire form accepted by validate_chat_payload()."""
        payload: Dict[str, Any] = {
            "provider": self.provider.value,
            "model": self.model,
            "apiKey": self.api_key,
            "systemPrompt": self.system_prompt,
            "userPrompt": self.user_prompt,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "effort": self.effort.value,
            "optimizePrompt": self.optimize_prompt,
        }
        if self.base_url:
            payload["baseUrl"] = self.base_url
        return payload


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    payload: Optional[ChatRequest] = None
    status: int = 200
    message: str = ""

    @classmethod
    def fail(cls, message: str, status: int = 400) -> "ValidationResult":
        return cls(ok=False, status=status, message=message)

    def raise_for_error(self) -> ChatRequest:
        if not self.ok or self.payload is None:
            raise ValidationError(self.message, status=self.status)
        return self.payload


def _is_number(value: Any) -> bool:
    """Finite real number, bools excluded."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def validate_chat_payload(raw: Any) -> ValidationResult:
    """
    Validate a decoded chat request body.

    Args:
        raw: Decoded JSON body (camelCase keys)

    Returns:
        ValidationResult with the canonical ChatRequest, or the HTTP status and
        caller-facing message of the first failing check
    """
    if not isinstance(raw, dict):
        return ValidationResult.fail("Invalid request body")

    try:
        provider = Provider(raw.get("provider"))
    except ValueError:
        return ValidationResult.fail("Invalid provider")

    model = raw.get("model").strip() if isinstance(raw.get("model"), str) else ""
    if not model or len(model) > MAX_MODEL_LEN:
        return ValidationResult.fail("Invalid model")

    api_key = raw.get("apiKey").strip() if isinstance(raw.get("apiKey"), str) else ""
    if not api_key or len(api_key) > MAX_API_KEY_LEN:
        return ValidationResult.fail("Missing API key", status=401)

    base_url = None
    if isinstance(raw.get("baseUrl"), str):
        checked = normalize_base_url(raw["baseUrl"], "")
        if checked is None:
            return ValidationResult.fail("Invalid baseUrl")
        base_url = checked or None
    elif raw.get("baseUrl") is not None:
        return ValidationResult.fail("Invalid baseUrl")

    system_prompt = raw.get("systemPrompt") if isinstance(raw.get("systemPrompt"), str) else ""
    if not system_prompt or len(system_prompt) > MAX_SYSTEM_PROMPT_LEN:
        return ValidationResult.fail("Invalid systemPrompt")

    user_prompt = raw.get("userPrompt") if isinstance(raw.get("userPrompt"), str) else ""
    if not user_prompt or len(user_prompt) > MAX_USER_PROMPT_LEN:
        return ValidationResult.fail("Invalid userPrompt")

    temperature = raw.get("temperature")
    if (
        not _is_number(temperature)
        or not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE
    ):
        return ValidationResult.fail("Invalid temperature")

    max_tokens = raw.get("maxTokens")
    if not _is_number(max_tokens):
        return ValidationResult.fail("Invalid maxTokens")
    max_tokens = math.trunc(max_tokens)
    if not MIN_MAX_TOKENS <= max_tokens <= MAX_MAX_TOKENS:
        return ValidationResult.fail("Invalid maxTokens")

    try:
        effort = EffortLevel(raw.get("effort"))
    except ValueError:
        return ValidationResult.fail("Invalid effort")

    optimize_prompt = raw.get("optimizePrompt", False)
    if not isinstance(optimize_prompt, bool):
        return ValidationResult.fail("Invalid optimizePrompt")

    return ValidationResult(
        ok=True,
        payload=ChatRequest(
            provider=provider,
            model=model,
            api_key=api_key,
            base_url=base_url,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=float(temperature),
            max_tokens=max_tokens,
            effort=effort,
            optimize_prompt=optimize_prompt,
        ),
    )


def parse_json_body(raw: bytes, max_bytes: int) -> Any:
    """
    Decode a raw request body after checking its size.

    Raises:
        ValidationError: 413 when too large, 400 when not JSON
    """
    if len(raw) > max_bytes:
        raise ValidationError("Payload too large", status=413)
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON", status=400)


def parse_chat_body(raw: bytes, max_bytes: int = config.MAX_CHAT_BODY_BYTES) -> ValidationResult:
    """Size-check, decode and validate a raw chat request body."""
    try:
        data = parse_json_body(raw, max_bytes)
    except ValidationError as e:
        return ValidationResult.fail(e.message, status=e.status)
    return validate_chat_payload(data)
