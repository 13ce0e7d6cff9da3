"""SQS source and sink built on aiobotocore."""

import asyncio
import hashlib
import logging
from typing import Any

from aiobotocore.session import AioSession
from pydantic import BaseModel

from config.config import SqsConfig
from core.errors.exceptions import wrap_transport_error
from order_bridge.common.metrics import (
    record_message_produced,
    record_producer_error,
    update_connection_status,
)
from order_bridge.common.producer import serialize_value
from order_bridge.common.types import ProduceResult, SourceMessage, from_sqs_message

logger = logging.getLogger(__name__)


class SQSConnectionManager:
    """Manages a shared aiobotocore SQS client."""

    def __init__(
        self,
        region_name: str = "us-east-1",
        *,
        session: AioSession | None = None,
        **client_kwargs: Any,
    ) -> None:
        self._region = region_name
        self._session = session or AioSession()
        self._client_kwargs = client_kwargs
        self._client: Any = None
        self._client_cm: Any = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: SqsConfig, session: AioSession | None = None) -> "SQSConnectionManager":
        return cls(config.region, session=session, **config.client_kwargs())

    async def get_client(self) -> Any:
        """Return shared SQS client; create if needed."""
        async with self._lock:
            if self._client is None:
                self._client_cm = self._session.create_client(
                    "sqs",
                    region_name=self._region,
                    **self._client_kwargs,
                )
                self._client = await self._client_cm.__aenter__()
                update_connection_status("sqs", connected=True)
                logger.info(
                    "Created SQS client",
                    extra={"transport": "sqs", "endpoint_url": self._client_kwargs.get("endpoint_url")},
                )
            return self._client

    async def close(self) -> None:
        """Close the client if open."""
        async with self._lock:
            if self._client_cm is not None:
                try:
                    await self._client_cm.__aexit__(None, None, None)
                finally:
                    self._client_cm = None
                    self._client = None
                    update_connection_status("sqs", connected=False)


class SqsSource:
    """Long-polling SQS queue consumer.

    ``ack`` deletes the message; ``release`` resets its visibility timeout to
    zero so SQS redelivers it immediately.
    """

    def __init__(
        self,
        connection: SQSConnectionManager,
        queue_url: str,
        visibility_timeout: int = 30,
    ):
        self._connection = connection
        self.queue_url = queue_url
        self._visibility_timeout = visibility_timeout
        self._lock = asyncio.Lock()

    async def receive(self, max_messages: int, wait_seconds: float) -> list[SourceMessage]:
        client = await self._connection.get_client()
        try:
            async with self._lock:
                out = await client.receive_message(
                    QueueUrl=self.queue_url,
                    MaxNumberOfMessages=max_messages,
                    WaitTimeSeconds=int(wait_seconds),
                    VisibilityTimeout=self._visibility_timeout,
                    AttributeNames=["ApproximateReceiveCount"],
                )
        except Exception as e:
            raise wrap_transport_error(
                e, "Failed to receive messages", transport="sqs", context={"queue_url": self.queue_url}
            ) from e

        return [from_sqs_message(msg) for msg in out.get("Messages", [])]

    async def ack(self, message: SourceMessage) -> None:
        client = await self._connection.get_client()
        try:
            async with self._lock:
                await client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except Exception as e:
            raise wrap_transport_error(
                e, "Failed to delete message", transport="sqs",
                context={"queue_url": self.queue_url, "message_id": message.message_id},
            ) from e

    async def release(self, message: SourceMessage) -> None:
        client = await self._connection.get_client()
        try:
            async with self._lock:
                await client.change_message_visibility(
                    QueueUrl=self.queue_url,
                    ReceiptHandle=message.receipt_handle,
                    VisibilityTimeout=0,
                )
        except Exception as e:
            # Visibility timeout expiry redelivers the message anyway
            logger.warning(
                "Failed to release message, it will reappear after the visibility timeout",
                extra={"queue_url": self.queue_url, "message_id": message.message_id, "error": str(e)},
            )
            return
        logger.info("Released message for redelivery", extra={"message_id": message.message_id})


class SqsSink:
    """Sends records to an SQS queue. The ``topic`` argument is the queue URL.

    FIFO queues (``.fifo`` suffix) group by message key and deduplicate by a
    hash of the body.
    """

    def __init__(self, connection: SQSConnectionManager):
        self._connection = connection
        self._lock = asyncio.Lock()

    async def send(
        self,
        topic: str,
        key: str | bytes | None,
        value: BaseModel | dict[str, Any] | bytes | str,
    ) -> ProduceResult:
        body = serialize_value(value).decode("utf-8")
        group = key.decode("utf-8") if isinstance(key, bytes) else key

        send_kwargs: dict[str, Any] = {"QueueUrl": topic, "MessageBody": body}
        if topic.endswith(".fifo"):
            send_kwargs["MessageGroupId"] = group or "default"
            send_kwargs["MessageDeduplicationId"] = hashlib.sha256(body.encode("utf-8")).hexdigest()

        client = await self._connection.get_client()
        try:
            async with self._lock:
                out = await client.send_message(**send_kwargs)
        except Exception as e:
            record_message_produced(topic, success=False)
            record_producer_error(topic, type(e).__name__)
            raise wrap_transport_error(
                e, "Failed to send message", transport="sqs", context={"queue_url": topic}
            ) from e

        record_message_produced(topic, success=True)
        return ProduceResult(topic=topic, partition=0, offset=-1, message_id=out.get("MessageId"))


__all__ = [
    "SQSConnectionManager",
    "SqsSource",
    "SqsSink",
]
