"""Message transport context variables for structured logging."""

from contextvars import ContextVar
from typing import Any, Dict, Optional

_message_source: ContextVar[str] = ContextVar("message_source", default="")
_message_id: ContextVar[str] = ContextVar("message_id", default="")
_message_key: ContextVar[str] = ContextVar("message_key", default="")
_retry_count: ContextVar[int] = ContextVar("retry_count", default=-1)


def set_message_context(
    source: Optional[str] = None,
    message_id: Optional[str] = None,
    key: Optional[str] = None,
    retry_count: Optional[int] = None,
) -> None:
    """
    Set message transport context variables for structured logging.

    Args:
        source: Queue URL or topic the message was received from
        message_id: Transport message id (SQS MessageId or topic/partition/offset)
        key: Stable message key (orderId or batchId)
        retry_count: Retry count of the envelope being processed
    """
    if source is not None:
        _message_source.set(source)
    if message_id is not None:
        _message_id.set(message_id)
    if key is not None:
        _message_key.set(key)
    if retry_count is not None:
        _retry_count.set(retry_count)


def get_message_context() -> Dict[str, Any]:
    """
    Get current message transport logging context.

    Only fields that are set are included.
    """
    context: Dict[str, Any] = {}

    source = _message_source.get()
    if source:
        context["message_source"] = source

    message_id = _message_id.get()
    if message_id:
        context["message_id"] = message_id

    key = _message_key.get()
    if key:
        context["message_key"] = key

    retry_count = _retry_count.get()
    if retry_count >= 0:
        context["retry_count"] = retry_count

    return context


def clear_message_context() -> None:
    """Clear all message transport logging context variables."""
    _message_source.set("")
    _message_id.set("")
    _message_key.set("")
    _retry_count.set(-1)


class MessageLogContext:
    """
    Context manager for message processing with automatic context setting.

    Usage:
        with MessageLogContext(source=queue_url, message_id=msg.message_id, key="ORD-1"):
            # All logs in this block will include message context
            await process_message(msg)
    """

    def __init__(
        self,
        source: Optional[str] = None,
        message_id: Optional[str] = None,
        key: Optional[str] = None,
        retry_count: Optional[int] = None,
    ):
        self.new_context = {
            "source": source,
            "message_id": message_id,
            "key": key,
            "retry_count": retry_count,
        }
        self.old_context: Dict[str, Any] = {}

    def __enter__(self) -> "MessageLogContext":
        self.old_context = {
            "source": _message_source.get(),
            "message_id": _message_id.get(),
            "key": _message_key.get(),
            "retry_count": _retry_count.get(),
        }

        for key, value in self.new_context.items():
            if value is not None:
                set_message_context(**{key: value})

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_message_context(**self.old_context)
        return False
