"""
Core library: reusable, transport-agnostic components.

Modules:
    logging  - Structured JSON logging with context propagation
    errors   - Exception hierarchy and error classification
    utils    - JSON serialization and worker id helpers
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
