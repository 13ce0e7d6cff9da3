"""Transport-agnostic message types for SQS and Kafka."""

from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

__all__ = [
    "SourceMessage",
    "ProduceResult",
    "MessageSource",
    "MessageSink",
    "BatchSource",
    "from_consumer_record",
    "from_sqs_message",
]


@dataclass(frozen=True)
class SourceMessage:
    """A message received from a source transport and not yet acknowledged.

    ``message_id`` identifies the message for logging: the SQS MessageId, or
    ``topic:partition:offset`` for Kafka records. ``receipt_handle`` is only set
    for SQS, ``topic``/``partition``/``offset`` only for Kafka.
    """

    body: str
    message_id: str
    key: str | None = None
    receipt_handle: str | None = None
    topic: str | None = None
    partition: int | None = None
    offset: int | None = None
    receive_count: int = 1


@dataclass(frozen=True)
class ProduceResult:
    """Transport-agnostic confirmation of a published message."""

    topic: str
    partition: int
    offset: int
    message_id: str | None = None


class MessageSource(Protocol):
    """Receive side of a transport: long-poll, acknowledge, release."""

    async def receive(self, max_messages: int, wait_seconds: float) -> list[SourceMessage]:
        ...

    async def ack(self, message: SourceMessage) -> None:
        """Remove the message permanently from the source."""
        ...

    async def release(self, message: SourceMessage) -> None:
        """Give the message back to the source for redelivery."""
        ...


class BatchSource(Protocol):
    """Receive side with batch-level position management (Kafka retry topic)."""

    async def receive(self, max_messages: int, wait_seconds: float) -> list[SourceMessage]:
        ...

    async def commit(self) -> None:
        """Commit the position after everything received so far."""
        ...

    async def rewind(self) -> None:
        """Go back to the last committed position."""
        ...


class MessageSink(Protocol):
    """Send side of a transport. ``topic`` is a Kafka topic or an SQS queue URL."""

    async def send(
        self,
        topic: str,
        key: str | bytes | None,
        value: BaseModel | dict[str, Any] | bytes | str,
    ) -> ProduceResult:
        ...


def _decode(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def from_consumer_record(record) -> SourceMessage:
    """Convert aiokafka ConsumerRecord to SourceMessage."""
    return SourceMessage(
        body=_decode(record.value) or "",
        message_id=f"{record.topic}:{record.partition}:{record.offset}",
        key=_decode(record.key),
        topic=record.topic,
        partition=record.partition,
        offset=record.offset,
    )


def from_sqs_message(message: dict[str, Any]) -> SourceMessage:
    """Convert an SQS ``receive_message`` entry to SourceMessage."""
    attributes = message.get("Attributes") or {}
    return SourceMessage(
        body=message.get("Body", ""),
        message_id=message.get("MessageId", ""),
        receipt_handle=message["ReceiptHandle"],
        receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
    )
