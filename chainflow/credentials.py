"""Credential and endpoint lookup per provider."""

import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional, Union

from dotenv import load_dotenv

from .providers.base import Provider

load_dotenv()

ENV_KEYS = {
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.CLAUDE: "ANTHROPIC_API_KEY",
    Provider.GEMINI: "GEMINI_API_KEY",
}

ENV_BASE_URLS = {
    Provider.OPENAI: "OPENAI_BASE_URL",
    Provider.CLAUDE: "ANTHROPIC_BASE_URL",
    Provider.GEMINI: "GEMINI_BASE_URL",
}


class CredentialStore(ABC):
    """Supplies a secret and an optional custom endpoint per provider."""

    @abstractmethod
    def get_key(self, provider: Provider) -> Optional[str]:
        pass

    @abstractmethod
    def get_endpoint(self, provider: Provider) -> Optional[str]:
        pass


class EnvCredentialStore(CredentialStore):
    """
    Reads OPENAI_API_KEY / ANTHROPIC_API_KEY / GEMINI_API_KEY and *_BASE_URL.

    `key_envs` and `base_url_envs` rename the variable looked up for a provider;
    providers left out keep the defaults above.
    """

    def __init__(
        self,
        key_envs: Optional[Mapping[Union[Provider, str], str]] = None,
        base_url_envs: Optional[Mapping[Union[Provider, str], str]] = None,
    ):
        self._key_envs: Dict[Provider, str] = dict(ENV_KEYS)
        self._key_envs.update({Provider(p): name for p, name in (key_envs or {}).items() if name})
        self._base_url_envs: Dict[Provider, str] = dict(ENV_BASE_URLS)
        self._base_url_envs.update(
            {Provider(p): name for p, name in (base_url_envs or {}).items() if name}
        )

    def key_env(self, provider: Provider) -> str:
        return self._key_envs[Provider(provider)]

    def get_key(self, provider: Provider) -> Optional[str]:
        return os.getenv(self.key_env(provider)) or None

    def get_endpoint(self, provider: Provider) -> Optional[str]:
        return os.getenv(self._base_url_envs[Provider(provider)]) or None


class StaticCredentialStore(CredentialStore):
    """In-memory store, used by the HTTP API (keys in the request) and tests."""

    def __init__(
        self,
        keys: Optional[Mapping[Union[Provider, str], str]] = None,
        endpoints: Optional[Mapping[Union[Provider, str], str]] = None,
    ):
        self._keys: Dict[Provider, str] = {Provider(p): k for p, k in (keys or {}).items() if k}
        self._endpoints: Dict[Provider, str] = {
            Provider(p): u for p, u in (endpoints or {}).items() if u
        }

    def get_key(self, provider: Provider) -> Optional[str]:
        return self._keys.get(Provider(provider))

    def get_endpoint(self, provider: Provider) -> Optional[str]:
        return self._endpoints.get(Provider(provider))
