"""
Error taxonomy for the matching core.

ValidationError       malformed or out-of-range input, reported synchronously.
NotFoundError         a referenced record is required but absent.
InfrastructureError   store read/write failure or timeout; retryable.
ConfigurationError    matching weights that cannot be used, raised at service construction.

Every error carries a machine-readable ``reason`` and a ``trace_id`` so the
caller-facing message can stay short while logs keep the context.
"""

import uuid


class MatchQueueError(Exception):
    """Base class for errors raised by the matching core."""

    def __init__(self, reason: str, detail: str | None = None):
        self.reason = reason
        self.detail = detail or reason
        self.trace_id = str(uuid.uuid4())
        super().__init__(self.detail)


class ValidationError(MatchQueueError):
    pass


class NotFoundError(MatchQueueError):
    pass


class ConfigurationError(MatchQueueError):
    pass


class InfrastructureError(MatchQueueError):
    """Raised when a store call fails or times out.

    ``operation`` and ``target_id`` identify the failing call for logging; the
    underlying driver message is kept on ``__cause__`` and never rendered to
    clients.
    """

    def __init__(self, operation: str, target_id: str | None = None, detail: str | None = None):
        self.operation = operation
        self.target_id = target_id
        super().__init__(reason="infrastructure_failure", detail=detail or f"{operation} failed")
