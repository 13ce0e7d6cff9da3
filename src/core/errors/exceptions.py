"""
Unified exception hierarchy for the order bridge.

Provides typed exceptions with retry classification so the orchestrators
can route failures without inspecting error strings.
"""


# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all bridge errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Base categories
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Domain-Specific Errors
# =============================================================================


class TransformationError(TransientError):
    """A message could not be classified, validated or transformed.

    Every transformation failure goes through the retry path, so the error is
    transient even when the underlying cause is a validation problem.
    """

    def __init__(
        self,
        reason: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(reason, cause, context)
        self.reason = reason


class TransportError(TransientError):
    """Receive, send, acknowledge or commit failed on a transport client."""

    def __init__(
        self,
        message: str,
        transport: str = "",
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        context = dict(context or {})
        if transport:
            context.setdefault("transport", transport)
        super().__init__(message, cause, context)
        self.transport = transport


class ConfigurationError(PermanentError):
    """Startup configuration is missing or invalid."""

    pass


# =============================================================================
# Error Classification Utilities
# =============================================================================

TRANSIENT_ERROR_MARKERS = frozenset(
    {
        "timeout",
        "timed out",
        "connection",
        "throttl",
        "rate limit",
        "temporarily unavailable",
        "service unavailable",
        "not enough replicas",
        "leader not available",
        "request timed out",
    }
)


def classify_exception(exc: Exception) -> ErrorCategory:
    """Classify an exception into error category."""
    if isinstance(exc, PipelineError):
        return exc.category

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorCategory.TRANSIENT

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()
    if any(m in exc_type or m in exc_str for m in TRANSIENT_ERROR_MARKERS):
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def is_retryable_error(exc: Exception) -> bool:
    """Check if exception should be retried (transient or unknown)."""
    if isinstance(exc, PipelineError):
        return exc.is_retryable
    return classify_exception(exc) in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)


def wrap_transport_error(
    exc: Exception,
    message: str,
    transport: str,
    context: dict | None = None,
) -> PipelineError:
    """Wrap a client exception in a TransportError, keeping typed errors as-is."""
    if isinstance(exc, PipelineError):
        if context:
            exc.context.update(context)
        return exc
    context = dict(context or {})
    context["error_type"] = type(exc).__name__
    return TransportError(message, transport=transport, cause=exc, context=context)
