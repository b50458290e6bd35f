"""FastAPI backend for the chainflow pipeline engine and streaming gateway."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__, http_pool
from .api import chat_router, pipelines_router
from .config import configure_logging, get_cors_origins
from .dependencies import reset_dependencies

logger = logging.getLogger(__name__)

app = FastAPI(title="chainflow API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Stream-Slot", "X-Run-Id"],
)

app.include_router(chat_router)
app.include_router(pipelines_router)


@app.on_event("startup")
async def startup_event():
    await http_pool.init_http_client()
    logger.info("Registered routes:")
    for route in app.routes:
        logger.info(f" - {route.path} [{getattr(route, 'methods', '')}]")


@app.on_event("shutdown")
async def shutdown_event():
    reset_dependencies()
    await http_pool.close_http_client()


@app.get("/api/health")
async def health():
    """Liveness plus the state of the shared HTTP client."""
    return {
        "status": "ok",
        "version": __version__,
        "http_client": await http_pool.check_http_client_health(),
    }


if __name__ == "__main__":
    import uvicorn
    from .config import BACKEND_PORT

    configure_logging()
    print(f"🚀 Starting chainflow backend on http://0.0.0.0:{BACKEND_PORT}")
    uvicorn.run(app, host="0.0.0.0", port=BACKEND_PORT)
