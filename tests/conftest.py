"""Pytest configuration and shared fixtures for chainflow tests.

This module provides:
- Basic pytest configuration
- Common fixtures (fake transport, gateway, credential store, sample graphs)
- Setup/teardown for test isolation
"""

import os
import sys
from pathlib import Path
from typing import Dict

import pytest

# Add project root to Python path to allow imports from chainflow, config, cli
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from chainflow.credentials import StaticCredentialStore  # noqa: E402
from chainflow.gateway import ChatGateway  # noqa: E402
from chainflow.pipeline import Edge, Node, Pipeline  # noqa: E402
from chainflow.providers import Provider  # noqa: E402
from tests.fixtures.test_helpers import FakeTransport  # noqa: E402


# ==================== Pytest Configuration ====================

def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers",
        "unit: mark test as a unit test (fast, isolated)"
    )
    config.addinivalue_line(
        "markers",
        "integration: mark test as an integration test (slower, multiple components)"
    )


# ==================== Environment Fixtures ====================

@pytest.fixture(scope="function", autouse=True)
def isolate_environment():
    """Keep environment variables from leaking between tests."""
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def mock_env_vars(monkeypatch) -> Dict[str, str]:
    """Provider keys in the environment, for EnvCredentialStore tests."""
    env_vars = {
        "OPENAI_API_KEY": "test-openai-key",
        "ANTHROPIC_API_KEY": "test-anthropic-key",
        "GEMINI_API_KEY": "test-gemini-key",
        "LOG_LEVEL": "ERROR",
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars


# ==================== Gateway Fixtures ====================

@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def gateway(transport) -> ChatGateway:
    return ChatGateway(transport=transport)


@pytest.fixture
def credentials() -> StaticCredentialStore:
    return StaticCredentialStore(
        {"openai": "sk-openai", "claude": "sk-claude", "gemini": "sk-gemini"}
    )


# ==================== Graph Fixtures ====================

@pytest.fixture
def diamond() -> Pipeline:
    """A -> (B, C) -> D, all on the OpenAI backend."""
    nodes = [
        Node(id=nid, label=nid, provider=Provider.OPENAI, model="gpt-4o", user_prompt_template=f"{nid}: {{{{prev.output}}}}")
        for nid in ("A", "B", "C", "D")
    ]
    edges = [Edge("A", "B"), Edge("A", "C"), Edge("B", "D"), Edge("C", "D")]
    return Pipeline(nodes=nodes, edges=edges, name="diamond")
