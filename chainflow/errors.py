"""Exception taxonomy for the pipeline engine and streaming gateway."""

from typing import Iterable, Optional


class ChainflowError(Exception):
    """Base class for all chainflow errors."""


class ValidationError(ChainflowError):
    """Raised when a request is rejected pre-flight. No side effects have happened."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


class UpstreamError(ChainflowError):
    """Raised when a backend answers with a non-2xx status."""

    def __init__(self, status: int, body: str = ""):
        super().__init__(body or f"Upstream error: {status}")
        self.status = status
        self.body = body


class TransportError(ChainflowError):
    """Raised on network failure or timeout while talking to a backend."""


class CancelledError(ChainflowError):
    """Raised when a cancellation token is observed at a suspension point.

    Distinct from failure: partial output is kept and no error chunk is emitted.
    """

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


class ParseError(ChainflowError):
    """Raised for a malformed stream record or response body. Never surfaced to callers."""


class InvalidEndpointError(ValidationError):
    """Raised when a custom endpoint URL is not a valid http(s) URL."""

    def __init__(self, message: str = "Invalid baseUrl"):
        super().__init__(message, status=400)


class PipelineValidationError(ChainflowError):
    """Raised when a pipeline has duplicate node ids or dangling edges."""


class CycleError(PipelineValidationError):
    """Raised when a pipeline graph contains a cycle."""

    def __init__(self, node_ids: Optional[Iterable[str]] = None):
        self.node_ids = set(node_ids or [])
        if self.node_ids:
            message = f"Cycle detected between nodes: {', '.join(sorted(self.node_ids))}"
        else:
            message = "Graph contains a cycle, cannot sort topologically"
        super().__init__(message)


class ChannelError(ChainflowError):
    """Raised when a correlated request is rejected or its channel closes."""


class ChannelTimeoutError(ChannelError):
    """Raised when a correlated request gets no reply within its timeout."""
