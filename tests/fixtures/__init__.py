"""Shared test fixtures for chainflow tests.

This package provides:
- A scripted in-memory transport
- SSE payload builders for each backend dialect
"""

__all__ = [
    "test_helpers",
]
