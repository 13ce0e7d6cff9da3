"""
Error classification and exception hierarchy.

Provides:
- PipelineError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    ConfigurationError,
    # Enums
    ErrorCategory,
    PermanentError,
    # Base classes
    PipelineError,
    TransformationError,
    TransientError,
    TransportError,
    # Classification utilities
    classify_exception,
    is_retryable_error,
    wrap_transport_error,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "TransientError",
    "PermanentError",
    # Domain errors
    "TransformationError",
    "TransportError",
    "ConfigurationError",
    # Classification utilities
    "classify_exception",
    "is_retryable_error",
    "wrap_transport_error",
]
