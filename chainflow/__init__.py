"""chainflow backend package: DAG pipeline engine and streaming LLM gateway."""

# Expose the leaf submodules; main/api import these, not the other way round
from . import config
from . import errors

__version__ = "0.1.0"

__all__ = ["config", "errors", "__version__"]
