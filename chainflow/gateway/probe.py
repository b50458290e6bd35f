"""Model discovery against OpenAI-compatible relays."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .. import config
from ..errors import ChainflowError
from ..providers.anthropic import ANTHROPIC_VERSION
from ..providers.base import normalize_base_url
from ..providers.catalog import ModelPick, fuzzy_match_model, pick_strongest_model
from .transport import BaseTransport

logger = logging.getLogger(__name__)

MAX_MODELS = 500
MAX_MODEL_NAME_LEN = 200

PROBE_FAILED_MESSAGE = (
    "Could not fetch the model list; this relay may not support the /v1/models "
    "endpoint. Enter the model name manually."
)


@dataclass
class ProbeResult:
    models: List[str] = field(default_factory=list)
    endpoint: Optional[str] = None
    error: Optional[str] = None
    recommended: Optional[ModelPick] = None
    matched: Optional[str] = None

    def to_dict(self) -> dict:
        result: dict = {"models": self.models}
        if self.endpoint:
            result["endpoint"] = self.endpoint
        if self.error:
            result["error"] = self.error
        if self.recommended:
            result["recommended"] = {
                "model": self.recommended.model,
                "provider": self.recommended.provider.value,
                "score": self.recommended.score,
            }
        if self.matched:
            result["matched"] = self.matched
        return result


def sanitize_models(
    models: List[Any], max_models: int = MAX_MODELS, max_name_len: int = MAX_MODEL_NAME_LEN
) -> List[str]:
    """Reduce raw entries (strings or {id}/{name} objects) to clean model names."""
    names = []
    for entry in models:
        if isinstance(entry, str):
            name = entry
        elif isinstance(entry, dict) and isinstance(entry.get("id"), str):
            name = entry["id"]
        elif isinstance(entry, dict) and isinstance(entry.get("name"), str):
            name = entry["name"]
        else:
            name = ""
        name = name.strip()
        if 0 < len(name) <= max_name_len:
            names.append(name)
    return names[:max_models]


def _extract_model_list(data: Any) -> Optional[List[Any]]:
    if isinstance(data, dict):
        if isinstance(data.get("data"), list):
            return data["data"]
        if isinstance(data.get("models"), list):
            return data["models"]
        return None
    if isinstance(data, list):
        return data
    return None


async def probe_models(
    base_url: str,
    api_key: str,
    transport: BaseTransport,
    timeout: float = config.PROBE_TIMEOUT,
    model: Optional[str] = None,
) -> ProbeResult:
    """
    Ask a relay which models it serves.

    Tries `{base}/v1/models`, then `{base}/models`; the first 2xx answer with a
    recognizable list wins. Failures are reported in ProbeResult.error.
    The strongest known model is suggested, and `model` (if given) is matched
    against the served names.
    """
    base = normalize_base_url(base_url, "")
    if not base or not api_key.strip():
        return ProbeResult(error="Missing baseUrl or apiKey")

    key = api_key.strip()
    headers = {
        "Authorization": f"Bearer {key}",
        "x-api-key": key,
        "anthropic-version": ANTHROPIC_VERSION,
    }

    for url in (f"{base}/v1/models", f"{base}/models"):
        try:
            status, data = await transport.get_json(url, headers, timeout)
        except ChainflowError as e:
            logger.debug(f"Model probe {url} failed: {e}")
            continue

        if data is None:
            logger.debug(f"Model probe {url} returned {status}")
            continue

        entries = _extract_model_list(data)
        if entries is not None:
            models = sanitize_models(entries)
            logger.info(f"✓ Probed {len(models)} models from {url}")
            return ProbeResult(
                models=models,
                endpoint=url,
                recommended=pick_strongest_model(models),
                matched=fuzzy_match_model(model, models) if model else None,
            )

    logger.warning(f"✗ No model list found at {base}")
    return ProbeResult(error=PROBE_FAILED_MESSAGE)
