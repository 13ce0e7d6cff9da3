"""Exponential backoff for retry attempts."""

from dataclasses import dataclass

from config.config import RetryConfig


@dataclass(frozen=True)
class BackoffPolicy:
    """Capped exponential backoff without jitter.

    ``delay(n) = min(base_delay * 2 ** min(n, max_exponent), max_delay)``

    With the defaults the sequence is 1, 2, 4, 8, 16, 30, 30, ... seconds.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_exponent: int = 5

    def __post_init__(self):
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if self.max_exponent < 0:
            raise ValueError("max_exponent must be non-negative")

    @classmethod
    def from_config(cls, config: RetryConfig) -> "BackoffPolicy":
        return cls(
            base_delay=float(config.base_delay_seconds),
            max_delay=float(config.max_delay_seconds),
            max_exponent=int(config.max_exponent),
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait before reattempt number ``attempt`` (negative counts as 0)."""
        exponent = min(max(attempt, 0), self.max_exponent)
        return min(self.base_delay * (2 ** exponent), self.max_delay)


__all__ = ["BackoffPolicy"]
