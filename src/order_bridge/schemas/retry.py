"""
Retry envelope and dead-letter record schemas.

Both travel as flat JSON objects on Kafka:

    RetryEnvelope     -> retry topic (one per failed attempt)
    DeadLetterRecord  -> DLQ topic (once per exhausted message)
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import Field, field_serializer, field_validator, model_validator

from order_bridge.schemas.base import WireModel, ensure_utc, format_timestamp


def _coerce_original_message(value: Any) -> Any:
    """Envelopes written by other producers may embed the order as an object."""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class RetryEnvelope(WireModel):
    """Schema for messages on the retry topic.

    Attributes:
        original_message: Raw source payload, unchanged
        message_key: Stable key (orderId or batchId, "unknown" if unreadable)
        retry_count: Failed reattempts so far (0 for the first envelope)
        first_attempt_timestamp: When the message first failed, never changes
        last_attempt_timestamp: When the most recent attempt failed
        error_message: Reason of the most recent failure
        error_detail: Formatted traceback of the most recent failure

    Example:
        >>> RetryEnvelope.model_validate_json(
        ...     '{"originalMessage": "{}", "messageKey": "ORD-1", "retryCount": 0,'
        ...     ' "firstAttemptTimestamp": "2024-12-25T10:30:00Z",'
        ...     ' "lastAttemptTimestamp": "2024-12-25T10:30:00Z",'
        ...     ' "errorMessage": "no matching schema"}'
        ... )
    """

    original_message: str = Field(..., alias="originalMessage")
    message_key: str = Field(..., alias="messageKey")
    retry_count: int = Field(default=0, alias="retryCount", ge=0)
    first_attempt_timestamp: datetime = Field(..., alias="firstAttemptTimestamp")
    last_attempt_timestamp: datetime = Field(..., alias="lastAttemptTimestamp")
    error_message: str = Field(default="", alias="errorMessage")
    error_detail: Optional[str] = Field(default=None, alias="errorDetail")

    @field_validator("original_message", mode="before")
    @classmethod
    def coerce_original_message(cls, v: Any) -> Any:
        return _coerce_original_message(v)

    @field_validator("first_attempt_timestamp", "last_attempt_timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_timestamps(self) -> "RetryEnvelope":
        """The last attempt can't precede the first one."""
        if self.last_attempt_timestamp < self.first_attempt_timestamp:
            raise ValueError("lastAttemptTimestamp must not be earlier than firstAttemptTimestamp")
        return self

    @field_serializer("first_attempt_timestamp", "last_attempt_timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return format_timestamp(timestamp)


class DeadLetterRecord(WireModel):
    """Schema for messages on the dead-letter topic.

    Attributes:
        original_message: Raw source payload (or raw retry record if unreadable)
        message_key: Stable key of the message
        total_retries: Failed reattempts before quarantine
        first_attempt_timestamp: When the message first failed
        failed_timestamp: When the message was quarantined
        final_error_message: Reason of the last failure
        final_error_detail: Formatted traceback of the last failure
    """

    original_message: str = Field(..., alias="originalMessage")
    message_key: str = Field(..., alias="messageKey")
    total_retries: int = Field(..., alias="totalRetries", ge=0)
    first_attempt_timestamp: datetime = Field(..., alias="firstAttemptTimestamp")
    failed_timestamp: datetime = Field(..., alias="failedTimestamp")
    final_error_message: str = Field(default="Max retries exceeded", alias="finalErrorMessage")
    final_error_detail: Optional[str] = Field(default=None, alias="finalErrorDetail")

    @field_validator("original_message", mode="before")
    @classmethod
    def coerce_original_message(cls, v: Any) -> Any:
        return _coerce_original_message(v)

    @field_validator("first_attempt_timestamp", "failed_timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_serializer("first_attempt_timestamp", "failed_timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return format_timestamp(timestamp)


__all__ = [
    "RetryEnvelope",
    "DeadLetterRecord",
]
