"""HTTP routers."""

from .chat import router as chat_router
from .pipelines import router as pipelines_router

__all__ = ["chat_router", "pipelines_router"]
