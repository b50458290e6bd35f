import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from chainflow import config as env_config
from chainflow.credentials import EnvCredentialStore
from chainflow.pipeline.base import Pipeline
from chainflow.pipeline.schema import PipelineDocument
from chainflow.providers.base import Provider


@dataclass(frozen=True)
class EngineConfig:
    concurrency: int
    l2_max_chars: int
    skip_on_failed_parent: bool


@dataclass(frozen=True)
class GatewayConfig:
    optimize_timeout: float
    probe_timeout: float
    upstream_error_max_chars: int


@dataclass(frozen=True)
class ProviderEndpoint:
    provider: str
    api_key_env: str
    base_url_env: str


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig
    gateway: GatewayConfig
    providers: Dict[str, ProviderEndpoint]


@dataclass(frozen=True)
class PipelineFile:
    pipeline: Pipeline
    user_input: str
    concurrency: Optional[int]


def _config_dir() -> str:
    return os.path.dirname(os.path.abspath(__file__))


def _load_yaml(path: str) -> Dict[str, Any]:
    config_path = path if os.path.isabs(path) else os.path.join(_config_dir(), path)

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_engine(data: Dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        concurrency=int(data.get("concurrency", env_config.PIPELINE_CONCURRENCY)),
        l2_max_chars=int(data.get("l2_max_chars", env_config.L2_MAX_CHARS)),
        skip_on_failed_parent=bool(
            data.get("skip_on_failed_parent", env_config.SKIP_ON_FAILED_PARENT)
        ),
    )


def _parse_gateway(data: Dict[str, Any]) -> GatewayConfig:
    return GatewayConfig(
        optimize_timeout=float(data.get("optimize_timeout", env_config.OPTIMIZE_TIMEOUT)),
        probe_timeout=float(data.get("probe_timeout", env_config.PROBE_TIMEOUT)),
        upstream_error_max_chars=int(
            data.get("upstream_error_max_chars", env_config.UPSTREAM_ERROR_MAX_CHARS)
        ),
    )


def _parse_providers(data: Dict[str, Dict[str, str]]) -> Dict[str, ProviderEndpoint]:
    unknown = sorted(set(data) - {p.value for p in Provider})
    if unknown:
        raise ValueError(f"Unknown provider in config: {', '.join(unknown)}")
    return {
        key: ProviderEndpoint(
            provider=key,
            api_key_env=value.get("api_key_env", ""),
            base_url_env=value.get("base_url_env", ""),
        )
        for key, value in data.items()
    }


def load_engine_config(path: str = "engine.yaml") -> AppConfig:
    """Engine settings from YAML; missing keys fall back to the environment defaults."""
    data = _load_yaml(path)

    return AppConfig(
        engine=_parse_engine(data.get("engine", {})),
        gateway=_parse_gateway(data.get("gateway", {})),
        providers=_parse_providers(data.get("providers", {})),
    )


def build_credentials(settings: AppConfig) -> EnvCredentialStore:
    """Env-backed credential store using the variable names from the providers section."""
    return EnvCredentialStore(
        key_envs={name: ep.api_key_env for name, ep in settings.providers.items()},
        base_url_envs={name: ep.base_url_env for name, ep in settings.providers.items()},
    )


def load_pipeline_file(path: str) -> PipelineFile:
    """
    Load a pipeline definition.

    Raises:
        pydantic.ValidationError: If the document does not match the schema
    """
    data = _load_yaml(os.path.abspath(path))
    document = PipelineDocument.model_validate(data)

    return PipelineFile(
        pipeline=document.to_pipeline(),
        user_input=document.user_input,
        concurrency=document.concurrency,
    )
