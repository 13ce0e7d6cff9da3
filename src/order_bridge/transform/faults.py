"""Fault injection for exercising the retry and dead-letter paths.

Injectors are passed to ``MessageTransformer``; the default injects nothing.
A single transformer instance is shared by both workers of a process, so
per-key counters carry over from the first attempt to the retries.
"""

from collections.abc import Iterable, Mapping
from typing import Protocol


class FaultInjector(Protocol):
    def should_fail(self, message_key: str) -> bool:
        """True if the current attempt for ``message_key`` must fail."""
        ...


class NoFaults:
    """Never fails."""

    def should_fail(self, message_key: str) -> bool:
        return False


class FailFirstAttempts:
    """Fails the first N attempts of each configured key, then succeeds.

    Example:
        >>> faults = FailFirstAttempts({"ORD-RETRY-001": 1})
        >>> faults.should_fail("ORD-RETRY-001"), faults.should_fail("ORD-RETRY-001")
        (True, False)
    """

    def __init__(self, failures: Mapping[str, int]):
        self._remaining = {key: int(count) for key, count in failures.items()}

    def should_fail(self, message_key: str) -> bool:
        remaining = self._remaining.get(message_key, 0)
        if remaining <= 0:
            return False
        self._remaining[message_key] = remaining - 1
        return True

    def remaining(self, message_key: str) -> int:
        return self._remaining.get(message_key, 0)


class AlwaysFail:
    """Fails every attempt for the configured keys, or for every key when none are given."""

    def __init__(self, keys: Iterable[str] | None = None):
        self._keys = frozenset(keys) if keys is not None else None

    def should_fail(self, message_key: str) -> bool:
        return self._keys is None or message_key in self._keys


class CompositeFaults:
    """Fails when any of the wrapped injectors fails."""

    def __init__(self, *injectors: FaultInjector):
        self._injectors = injectors

    def should_fail(self, message_key: str) -> bool:
        # Evaluate every injector so counting injectors stay in step
        results = [injector.should_fail(message_key) for injector in self._injectors]
        return any(results)


__all__ = [
    "FaultInjector",
    "NoFaults",
    "FailFirstAttempts",
    "AlwaysFail",
    "CompositeFaults",
]
