"""FastAPI dependency injection utilities.

Route handlers get the shared gateway and credential store through these
functions, so tests can swap them with `app.dependency_overrides`.
"""

import logging
from typing import Optional

from .credentials import CredentialStore, EnvCredentialStore
from .gateway import ChatGateway

logger = logging.getLogger(__name__)

_gateway: Optional[ChatGateway] = None
_credentials: Optional[CredentialStore] = None


def get_gateway() -> ChatGateway:
    """
    FastAPI dependency for the process-wide chat gateway.

    The gateway holds the stream registry, so every request must share it
    for per-slot cancellation to work.

    Example:
        @router.post("/api/chat")
        async def chat(gateway: ChatGateway = Depends(get_gateway)):
            ...
    """
    global _gateway
    if _gateway is None:
        _gateway = ChatGateway()
        logger.info("✓ Chat gateway created")
    return _gateway


def get_credentials() -> CredentialStore:
    """FastAPI dependency for server-side keys (used when a pipeline body carries none)."""
    global _credentials
    if _credentials is None:
        _credentials = EnvCredentialStore()
    return _credentials


def reset_dependencies() -> None:
    """Cancel live streams and forget the singletons (shutdown, tests)."""
    global _gateway, _credentials
    if _gateway is not None:
        cancelled = _gateway.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} live streams")
    _gateway = None
    _credentials = None
