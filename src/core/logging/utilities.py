"""Logging utility functions."""

import logging
from typing import Any

# Reserved LogRecord attribute names that cannot be used in extra dict
_RESERVED_LOG_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "asctime",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)

MAX_ERROR_MESSAGE_LENGTH = 500


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Example:
        log_with_context(
            logger, logging.INFO, "Record forwarded",
            message_key="ORD-1",
            topic="place-order-topic",
        )
    """
    exc_info = kwargs.pop("exc_info", None)
    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}
    logger.log(level, msg, exc_info=exc_info, extra=extra)


def log_exception(
    logger: logging.Logger,
    exc: BaseException,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Extracts error_category from PipelineError subclasses and truncates the
    error message.

    Example:
        try:
            await sink.send(topic, key, record)
        except Exception as e:
            log_exception(logger, e, "Forward failed", message_key=key)
    """
    if kwargs.get("error_category") is None and hasattr(exc, "category"):
        cat = exc.category
        kwargs["error_category"] = cat.value if hasattr(cat, "value") else str(cat)

    error_msg = str(exc)
    if len(error_msg) > MAX_ERROR_MESSAGE_LENGTH:
        error_msg = error_msg[:MAX_ERROR_MESSAGE_LENGTH] + "..."
    kwargs["error_message"] = error_msg
    kwargs.setdefault("error_type", type(exc).__name__)

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}
    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=extra)
    else:
        logger.log(level, msg, extra=extra)


def format_cycle_output(
    cycle_count: int,
    forwarded: int,
    retried: int,
    dead_lettered: int = 0,
    since_last: dict[str, int] | None = None,
    interval_seconds: int = 30,
) -> str:
    """
    Format standardized cycle output for workers with delta tracking.

    Args:
        cycle_count: Current cycle number
        forwarded: Total records forwarded to the destination
        retried: Total messages sent to the retry topic
        dead_lettered: Total messages sent to the dead-letter topic
        since_last: Optional delta counts since last cycle (same keys)
        interval_seconds: Cycle interval in seconds (default: 30)

    Example:
        >>> format_cycle_output(1, 120, 3)
        'Cycle 1: processed=123 (forwarded=120, retried=3)'
        >>> format_cycle_output(5, 120, 3, 1, {"forwarded": 30, "retried": 0, "dead_lettered": 0}, 30)
        'Cycle 5: +30 this cycle | total: 120 forwarded, 3 retried, 1 dead-lettered | 1.0 msg/s'
    """
    if since_last is not None:
        delta_total = sum(since_last.get(k, 0) for k in ("forwarded", "retried", "dead_lettered"))
        rate = delta_total / interval_seconds if interval_seconds > 0 else 0

        total_parts = [f"{forwarded} forwarded"]
        if retried > 0:
            total_parts.append(f"{retried} retried")
        if dead_lettered > 0:
            total_parts.append(f"{dead_lettered} dead-lettered")
        return f"Cycle {cycle_count}: +{delta_total} this cycle | total: {', '.join(total_parts)} | {rate:.1f} msg/s"

    total = forwarded + retried + dead_lettered
    parts = [f"forwarded={forwarded}", f"retried={retried}"]
    if dead_lettered > 0:
        parts.append(f"dead_lettered={dead_lettered}")
    return f"Cycle {cycle_count}: processed={total} ({', '.join(parts)})"
