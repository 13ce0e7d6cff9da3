"""
Helpers shared by the bridge and retry workers for building retry envelopes
and dead-letter records and for logging routing decisions.
"""

import logging
import traceback
from datetime import UTC, datetime
from typing import Any

from order_bridge.schemas.retry import DeadLetterRecord, RetryEnvelope

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500
MAX_ERROR_DETAIL_LENGTH = 4000
EXHAUSTED_MESSAGE = "Max retries exceeded"


def utc_now() -> datetime:
    return datetime.now(UTC)


def truncate_error_message(error: BaseException | str, max_length: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """
    Truncate error message to prevent huge Kafka messages.

    Returns the message with an ellipsis when it was cut.
    """
    error_message = str(error)
    if len(error_message) > max_length:
        return error_message[: max_length - 3] + "..."
    return error_message


def format_error_detail(error: BaseException, max_length: int = MAX_ERROR_DETAIL_LENGTH) -> str:
    """Formatted traceback of ``error``, keeping the innermost frames when too long."""
    detail = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    if len(detail) > max_length:
        return "..." + detail[-(max_length - 3):]
    return detail


def should_send_to_dlq(retry_count: int, max_retries: int) -> bool:
    """True once ``retry_count`` reached the attempt limit."""
    return retry_count >= max_retries


def build_retry_envelope(
    original_message: str,
    message_key: str,
    error: BaseException,
    now: datetime | None = None,
) -> RetryEnvelope:
    """First envelope for a message that failed on the primary path."""
    timestamp = now or utc_now()
    return RetryEnvelope(
        original_message=original_message,
        message_key=message_key,
        retry_count=0,
        first_attempt_timestamp=timestamp,
        last_attempt_timestamp=timestamp,
        error_message=truncate_error_message(error),
        error_detail=format_error_detail(error),
    )


def next_retry_envelope(
    envelope: RetryEnvelope,
    error: BaseException,
    now: datetime | None = None,
) -> RetryEnvelope:
    """Re-enqueued copy of ``envelope`` after another failed attempt.

    The retry count goes up by one, the first-attempt timestamp is kept.
    """
    return envelope.model_copy(
        update={
            "retry_count": envelope.retry_count + 1,
            "last_attempt_timestamp": now or utc_now(),
            "error_message": truncate_error_message(error),
            "error_detail": format_error_detail(error),
        }
    )


def build_dead_letter_record(
    envelope: RetryEnvelope,
    total_retries: int,
    error: BaseException | None = None,
    now: datetime | None = None,
) -> DeadLetterRecord:
    """Dead-letter record for an envelope whose attempts are exhausted.

    Without a fresh ``error`` the envelope's last error is kept as the final one.
    """
    if error is not None:
        final_message = truncate_error_message(error)
        final_detail = format_error_detail(error)
    else:
        final_message = envelope.error_message or EXHAUSTED_MESSAGE
        final_detail = envelope.error_detail
    return DeadLetterRecord(
        original_message=envelope.original_message,
        message_key=envelope.message_key,
        total_retries=total_retries,
        first_attempt_timestamp=envelope.first_attempt_timestamp,
        failed_timestamp=now or utc_now(),
        final_error_message=final_message,
        final_error_detail=final_detail,
    )


def build_unreadable_dead_letter(
    raw_value: str,
    message_key: str,
    error: BaseException,
    now: datetime | None = None,
) -> DeadLetterRecord:
    """Dead-letter record for a retry-topic record that is not a valid envelope."""
    timestamp = now or utc_now()
    return DeadLetterRecord(
        original_message=raw_value,
        message_key=message_key,
        total_retries=0,
        first_attempt_timestamp=timestamp,
        failed_timestamp=timestamp,
        final_error_message=truncate_error_message(f"Unreadable retry envelope: {error}"),
        final_error_detail=format_error_detail(error),
    )


def log_retry_decision(
    action: str,
    message_key: str,
    retry_count: int,
    error: BaseException | None = None,
    extra_context: dict[str, Any] | None = None,
) -> None:
    """
    Log retry routing decision with consistent format.

    Args:
        action: "retry", "dlq_exhausted", "dlq_unreadable" or "forwarded"
        message_key: Stable key of the message
        retry_count: Retry count the decision was made for
        error: Exception that caused the failure, if any
        extra_context: Additional context to include in log
    """
    log_context: dict[str, Any] = {
        "message_key": message_key,
        "retry_count": retry_count,
    }
    if error is not None:
        log_context["error_type"] = type(error).__name__
        log_context["error_message"] = truncate_error_message(error, 200)
    if extra_context:
        log_context.update(extra_context)

    if action == "dlq_exhausted":
        logger.warning("Retries exhausted, sending to DLQ", extra=log_context)
    elif action == "dlq_unreadable":
        logger.error("Unreadable retry envelope, sending to DLQ", extra=log_context)
    elif action == "retry":
        logger.info("Sending message to retry topic", extra=log_context)
    elif action == "forwarded":
        logger.info("Retry attempt succeeded, record forwarded", extra=log_context)


__all__ = [
    "EXHAUSTED_MESSAGE",
    "utc_now",
    "truncate_error_message",
    "format_error_detail",
    "should_send_to_dlq",
    "build_retry_envelope",
    "next_retry_envelope",
    "build_dead_letter_record",
    "build_unreadable_dead_letter",
    "log_retry_decision",
]
