"""
Core types shared across modules.

This module provides the enums used by the error hierarchy and the logging
helpers so that every package classifies failures the same way.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., broker timeouts, a message that fails transformation)
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., invalid configuration)
        UNKNOWN: Unclassified errors, may retry conservatively
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
