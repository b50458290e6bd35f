"""Configuration for the chainflow engine, gateway and API server."""

import logging
import os
from dotenv import load_dotenv

load_dotenv()

# ============================================================================
# Pipeline Engine Configuration
# ============================================================================


def get_int(env_var: str, default: int) -> int:
    """Get an integer from environment or return default."""
    try:
        return int(os.getenv(env_var, default))
    except ValueError:
        print(f"Warning: Invalid {env_var}, using default {default}")
        return default


def get_float(env_var: str, default: float) -> float:
    """Get a float from environment or return default."""
    try:
        return float(os.getenv(env_var, default))
    except ValueError:
        print(f"Warning: Invalid {env_var}, using default {default}")
        return default


# Max node tasks running at once inside one layer
PIPELINE_CONCURRENCY = get_int("CHAINFLOW_CONCURRENCY", 5)

# Character budget for the merged upstream (L2) context
L2_MAX_CHARS = get_int("CHAINFLOW_L2_MAX_CHARS", 4000)

# Error text stored on a failed node is cut to this length
NODE_ERROR_MAX_CHARS = 200

# Dependents of a failed node run with an empty slot unless this is set
SKIP_ON_FAILED_PARENT = os.getenv("CHAINFLOW_SKIP_ON_FAILED_PARENT", "false").lower() == "true"

# ============================================================================
# Gateway Configuration
# ============================================================================

# Prompt-optimization pre-pass timeout (seconds)
OPTIMIZE_TIMEOUT = get_float("CHAINFLOW_OPTIMIZE_TIMEOUT", 10.0)

# Model discovery timeout (seconds)
PROBE_TIMEOUT = get_float("CHAINFLOW_PROBE_TIMEOUT", 10.0)

# Token counter worker reply timeout (seconds)
TOKEN_COUNT_TIMEOUT = get_float("CHAINFLOW_TOKEN_COUNT_TIMEOUT", 1.0)

# Upstream error bodies are truncated to this many characters
UPSTREAM_ERROR_MAX_CHARS = 4000

# Raw request body caps (bytes)
MAX_CHAT_BODY_BYTES = 256 * 1024
MAX_PROBE_BODY_BYTES = 16 * 1024
MAX_PIPELINE_BODY_BYTES = 1024 * 1024

# ============================================================================
# Port Configuration
# ============================================================================

# Backend API server port
BACKEND_PORT = get_int("PORT_BACKEND", 8200)

# Frontend dev server port
FRONTEND_PORT = get_int("PORT_FRONTEND", 4173)


def get_cors_origins():
    """Generate CORS allowed origins based on port configuration."""
    extra = [o.strip() for o in os.getenv("CORS_EXTRA_ORIGINS", "").split(",") if o.strip()]
    return [
        f"http://localhost:{FRONTEND_PORT}",
        f"http://127.0.0.1:{FRONTEND_PORT}",
    ] + extra


# ============================================================================
# Logging
# ============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for CLI and server entry points."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
