"""Retry policy and retry/DLQ payload helpers."""

from order_bridge.common.retry.backoff import BackoffPolicy
from order_bridge.common.retry.retry_utils import (
    build_dead_letter_record,
    build_retry_envelope,
    build_unreadable_dead_letter,
    next_retry_envelope,
    should_send_to_dlq,
)

__all__ = [
    "BackoffPolicy",
    "build_retry_envelope",
    "next_retry_envelope",
    "build_dead_letter_record",
    "build_unreadable_dead_letter",
    "should_send_to_dlq",
]
