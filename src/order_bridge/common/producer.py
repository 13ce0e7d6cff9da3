"""Kafka message producer used for destination records, retry envelopes and DLQ records."""

import asyncio
import json
import logging
from typing import Any

from aiokafka import AIOKafkaProducer
from pydantic import BaseModel

from config.config import KafkaConfig
from core.errors.exceptions import wrap_transport_error
from core.utils.json_serializers import json_serializer
from order_bridge.common.metrics import (
    record_message_produced,
    record_producer_error,
    update_connection_status,
)
from order_bridge.common.types import ProduceResult

logger = logging.getLogger(__name__)


def serialize_value(value: BaseModel | dict[str, Any] | bytes | str) -> bytes:
    """Serialize a payload to UTF-8 JSON bytes (pydantic models by alias)."""
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True).encode("utf-8")
    return json.dumps(value, default=json_serializer).encode("utf-8")


def encode_key(key: str | bytes | None) -> bytes | None:
    if key is None:
        return None
    if isinstance(key, bytes):
        return key
    return key.encode("utf-8")


class MessageProducer:
    """Async Kafka producer that waits for broker acknowledgement on every send."""

    def __init__(self, config: KafkaConfig, worker_name: str):
        self.config = config
        self.worker_name = worker_name
        self._producer: AIOKafkaProducer | None = None
        self._started = False
        self._lock = asyncio.Lock()

        logger.info(
            "Initialized message producer",
            extra={
                "worker_name": worker_name,
                "bootstrap_servers": config.bootstrap_servers,
                "acks": config.acks,
            },
        )

    def _resolve_acks(self) -> Any:
        acks_value = self.config.acks
        if isinstance(acks_value, str) and acks_value.isdigit():
            return int(acks_value)
        return acks_value

    async def start(self) -> None:
        if self._started:
            logger.warning("Producer already started, ignoring duplicate start call")
            return

        logger.info("Starting message producer", extra={"worker_name": self.worker_name})

        self._producer = AIOKafkaProducer(
            bootstrap_servers=self.config.bootstrap_servers,
            client_id=f"{self.config.consumer_group_prefix}-{self.worker_name}-producer",
            acks=self._resolve_acks(),
            request_timeout_ms=self.config.request_timeout_ms,
            value_serializer=lambda v: v,
        )
        await self._producer.start()
        self._started = True
        update_connection_status(f"{self.worker_name}-producer", connected=True)

        logger.info(
            "Message producer started successfully",
            extra={"bootstrap_servers": self.config.bootstrap_servers, "acks": self.config.acks},
        )

    async def stop(self) -> None:
        if self._producer is None:
            logger.debug("Producer already stopped")
            return

        logger.info("Stopping message producer")
        try:
            if self._started:
                await self._producer.flush()
            await self._producer.stop()
            logger.info("Message producer stopped successfully")
        except Exception as e:
            logger.error(
                "Error stopping message producer",
                extra={"error": str(e)},
                exc_info=True,
            )
        finally:
            update_connection_status(f"{self.worker_name}-producer", connected=False)
            self._producer = None
            self._started = False

    async def send(
        self,
        topic: str,
        key: str | bytes | None,
        value: BaseModel | dict[str, Any] | bytes | str,
    ) -> ProduceResult:
        """Send one message and wait for the broker to confirm it.

        Raises:
            RuntimeError: If the producer was not started
            TransportError: If the broker rejected or timed out the send
        """
        if not self._started or self._producer is None:
            raise RuntimeError("Producer not started. Call start() first.")

        value_bytes = serialize_value(value)
        key_bytes = encode_key(key)

        logger.debug(
            "Sending message",
            extra={"topic": topic, "message_key": key, "value_size": len(value_bytes)},
        )

        try:
            async with self._lock:
                metadata = await self._producer.send_and_wait(topic, key=key_bytes, value=value_bytes)
        except Exception as e:
            record_message_produced(topic, success=False)
            record_producer_error(topic, type(e).__name__)
            raise wrap_transport_error(
                e, f"Failed to send message to {topic}", transport="kafka", context={"topic": topic}
            ) from e

        record_message_produced(topic, success=True)
        logger.debug(
            "Message sent successfully",
            extra={"topic": metadata.topic, "partition": metadata.partition, "offset": metadata.offset},
        )
        return ProduceResult(topic=metadata.topic, partition=metadata.partition, offset=metadata.offset)

    @property
    def is_started(self) -> bool:
        return self._started and self._producer is not None


__all__ = [
    "MessageProducer",
    "ProduceResult",
    "serialize_value",
    "encode_key",
]
