"""Custom exceptions for the button generation service."""

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminant carried by every service error."""

    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    CONFIG = "config"


class ButtonSynthError(Exception):
    """Base class for service exceptions with HTTP status code.

    ``message`` is short and safe to return to clients. Anything more
    detailed belongs in the server log only.
    """
    status_code: int = 500
    kind: ErrorKind = ErrorKind.CONFIG

    def __init__(self, message: str = "Service error"):
        self.message = message
        super().__init__(message)


class ValidationError(ButtonSynthError):
    """Raised when client input is malformed or matches a deny pattern.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    kind = ErrorKind.VALIDATION


class RateLimitError(ButtonSynthError):
    """Raised when a client's token bucket is empty.

    Maps to HTTP 429 Too Many Requests with a Retry-After hint.
    """
    status_code = 429
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        retry_after: int,
        limit: int,
        reset_after: int | None = None,
        message: str = "Too Many Requests",
    ):
        self.retry_after = retry_after
        self.limit = limit
        self.reset_after = reset_after if reset_after is not None else retry_after
        super().__init__(message)


class UpstreamError(ButtonSynthError):
    """Raised when the generation backend fails or returns unusable output.

    Maps to HTTP 400. ``detail`` is logged, never sent to the client.
    """
    status_code = 400
    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str = "Generation failed", detail: str | None = None):
        self.detail = detail or message
        super().__init__(message)


class UpstreamTimeoutError(UpstreamError):
    """Raised when the generation backend does not answer in time."""
    kind = ErrorKind.UPSTREAM_TIMEOUT

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(
            "Generation timed out",
            detail=f"No response from generation backend within {timeout:g}s",
        )


class InternalConfigError(ButtonSynthError):
    """Raised at startup when required configuration is missing.

    The process must not start serving when this is raised.
    """
    status_code = 500
    kind = ErrorKind.CONFIG
