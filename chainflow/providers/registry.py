"""Adapter registry and relay detection.

`build_request()` is the single entry point the gateway uses: it decides
whether the configured endpoint is an official host for the provider or a
third-party relay, and builds the request in the matching dialect.
"""

import logging
from typing import Dict, Optional, Union

from .anthropic import ClaudeAdapter
from .base import AdapterConfig, AdapterRequest, BaseChatAdapter, Provider, url_host
from .gemini import GeminiAdapter
from .openai import OpenAIAdapter

logger = logging.getLogger(__name__)

_ADAPTERS: Dict[Provider, BaseChatAdapter] = {
    Provider.OPENAI: OpenAIAdapter(),
    Provider.CLAUDE: ClaudeAdapter(),
    Provider.GEMINI: GeminiAdapter(),
}

OFFICIAL_HOSTS = {provider: list(a.official_hosts) for provider, a in _ADAPTERS.items()}
DEFAULT_BASE_URLS = {provider: a.default_base_url for provider, a in _ADAPTERS.items()}


def get_adapter(provider: Union[Provider, str]) -> BaseChatAdapter:
    """
    Get the adapter for a provider.

    Raises:
        ValueError: If the provider is not supported
    """
    try:
        return _ADAPTERS[Provider(provider)]
    except ValueError:
        raise ValueError(f"Unknown provider: {provider}")


def is_relay(provider: Union[Provider, str], base_url: Optional[str]) -> bool:
    """
    True when a custom endpoint is not one of the provider's official hosts.

    No endpoint means the official default is used, so that is never a relay.
    An endpoint that cannot be parsed is treated as a relay.
    """
    if not base_url:
        return False
    host = url_host(base_url)
    if not host:
        return True
    return host not in OFFICIAL_HOSTS.get(Provider(provider), [])


def resolve_stream_format(provider: Union[Provider, str], base_url: Optional[str]) -> Provider:
    """Dialect of the response stream: relays always answer OpenAI-style."""
    return Provider.OPENAI if is_relay(provider, base_url) else Provider(provider)


def build_request(
    provider: Union[Provider, str], config: AdapterConfig, stream: bool = True
) -> AdapterRequest:
    """
    Build a backend request, switching to the OpenAI dialect for relays.

    Args:
        provider: Nominal provider selected by the caller
        config: Adapter configuration
        stream: False for the non-streaming pre-pass

    Returns:
        AdapterRequest
    """
    dialect = resolve_stream_format(provider, config.base_url)
    if dialect != Provider(provider):
        logger.debug(f"Endpoint {config.base_url} is a relay, using OpenAI dialect for {provider}")
    return get_adapter(dialect).build_request(config, stream=stream)
