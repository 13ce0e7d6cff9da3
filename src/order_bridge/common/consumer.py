"""Kafka source with manual offset management.

Offsets are never auto-committed. Two acknowledgement styles are supported:

- per message (primary bridge reading from Kafka): ``ack()`` commits
  ``offset + 1`` for the record's partition, ``release()`` seeks back so the
  record is fetched again and holds back later acks on that partition;
- per batch (retry worker): ``commit()`` once every record of the batch is
  terminal, ``rewind()`` to go back to the last committed position after a
  failed batch.
"""

import asyncio
import itertools
import logging

from aiokafka import AIOKafkaConsumer
from aiokafka.structs import TopicPartition

from config.config import KafkaConfig
from core.errors.exceptions import wrap_transport_error
from order_bridge.common.metrics import update_connection_status
from order_bridge.common.types import SourceMessage, from_consumer_record

logger = logging.getLogger(__name__)


class KafkaSource:
    """Async Kafka consumer exposing the receive/ack/release source interface."""

    def __init__(
        self,
        config: KafkaConfig,
        topics: list[str],
        worker_name: str,
        group_id: str | None = None,
    ):
        if not topics:
            raise ValueError("At least one topic must be specified")

        self.config = config
        self.topics = topics
        self.worker_name = worker_name
        self.group_id = group_id or config.get_consumer_group(worker_name)
        self._consumer: AIOKafkaConsumer | None = None
        self._lock = asyncio.Lock()
        # Partitions with a released record in the current batch: lowest released offset
        self._released: dict[TopicPartition, int] = {}
        # Partitions fetched since the last commit: first uncommitted offset
        self._uncommitted: dict[TopicPartition, int] = {}

        logger.info(
            "Initialized Kafka source",
            extra={
                "worker_name": worker_name,
                "topic": ",".join(topics),
                "consumer_group": self.group_id,
                "bootstrap_servers": config.bootstrap_servers,
            },
        )

    def _build_kafka_config(self) -> dict:
        return {
            "bootstrap_servers": self.config.bootstrap_servers,
            "group_id": self.group_id,
            "client_id": f"{self.group_id}-consumer",
            "enable_auto_commit": False,
            "auto_offset_reset": self.config.auto_offset_reset,
            "max_poll_records": self.config.max_poll_records,
            "session_timeout_ms": self.config.session_timeout_ms,
            "max_poll_interval_ms": self.config.max_poll_interval_ms,
        }

    async def start(self) -> None:
        if self._consumer is not None:
            logger.warning("Kafka source already started, ignoring duplicate start call")
            return

        logger.info("Starting Kafka source", extra={"topic": ",".join(self.topics), "consumer_group": self.group_id})
        consumer = AIOKafkaConsumer(*self.topics, **self._build_kafka_config())
        await consumer.start()
        self._consumer = consumer
        update_connection_status(f"{self.worker_name}-consumer", connected=True)

    async def stop(self) -> None:
        if self._consumer is None:
            logger.debug("Kafka source not running or already stopped")
            return

        logger.info("Stopping Kafka source", extra={"consumer_group": self.group_id})
        try:
            await self._consumer.stop()
        finally:
            update_connection_status(f"{self.worker_name}-consumer", connected=False)
            self._consumer = None

    def _require_consumer(self) -> AIOKafkaConsumer:
        if self._consumer is None:
            raise RuntimeError("Kafka source not started. Call start() first.")
        return self._consumer

    async def receive(self, max_messages: int, wait_seconds: float) -> list[SourceMessage]:
        """Fetch up to ``max_messages`` records, waiting at most ``wait_seconds``."""
        consumer = self._require_consumer()
        try:
            async with self._lock:
                self._released.clear()
                data = await consumer.getmany(
                    timeout_ms=int(wait_seconds * 1000),
                    max_records=max_messages,
                )
        except Exception as e:
            raise wrap_transport_error(
                e, "Failed to fetch records", transport="kafka", context={"topic": ",".join(self.topics)}
            ) from e

        for tp, records in data.items():
            if records:
                self._uncommitted.setdefault(tp, min(record.offset for record in records))

        return [from_consumer_record(record) for record in itertools.chain.from_iterable(data.values())]

    @staticmethod
    def _partition_of(message: SourceMessage) -> TopicPartition:
        if message.topic is None or message.partition is None or message.offset is None:
            raise ValueError(f"Message {message.message_id} was not received from Kafka")
        return TopicPartition(message.topic, message.partition)

    async def ack(self, message: SourceMessage) -> None:
        """Commit past ``message`` unless an earlier record of its partition was released."""
        consumer = self._require_consumer()
        tp = self._partition_of(message)

        async with self._lock:
            released_offset = self._released.get(tp)
            if released_offset is not None and released_offset < message.offset:
                logger.debug(
                    "Holding back commit behind released record",
                    extra={"topic": tp.topic, "partition": tp.partition, "offset": message.offset},
                )
                return
            try:
                await consumer.commit({tp: message.offset + 1})
                if self._uncommitted.get(tp, message.offset + 1) <= message.offset:
                    self._uncommitted[tp] = message.offset + 1
            except Exception as e:
                raise wrap_transport_error(
                    e, "Failed to commit offset", transport="kafka",
                    context={"topic": tp.topic, "partition": tp.partition, "offset": message.offset},
                ) from e

    async def release(self, message: SourceMessage) -> None:
        """Seek back to ``message`` so it is fetched again on the next receive."""
        consumer = self._require_consumer()
        tp = self._partition_of(message)

        async with self._lock:
            released_offset = self._released.get(tp)
            if released_offset is None or message.offset < released_offset:
                self._released[tp] = message.offset
                consumer.seek(tp, message.offset)

        logger.info(
            "Released record for redelivery",
            extra={"topic": tp.topic, "partition": tp.partition, "offset": message.offset},
        )

    async def commit(self) -> None:
        """Commit the consumed position of every assigned partition."""
        consumer = self._require_consumer()
        try:
            async with self._lock:
                await consumer.commit()
                self._uncommitted.clear()
        except Exception as e:
            raise wrap_transport_error(e, "Failed to commit batch", transport="kafka") from e
        logger.debug("Committed offsets", extra={"consumer_group": self.group_id})

    async def rewind(self) -> None:
        """Seek every assigned partition back to its last committed position.

        Partitions fetched since the last commit go back to the first offset
        fetched from them. ``seek_to_committed`` leaves a partition in place
        when the group has no committed offset for it, so it is only used for
        the remaining partitions.
        """
        consumer = self._require_consumer()
        async with self._lock:
            self._released.clear()
            uncommitted, self._uncommitted = self._uncommitted, {}
            assigned = consumer.assignment()
            if not assigned:
                return
            try:
                for tp, offset in uncommitted.items():
                    if tp in assigned:
                        consumer.seek(tp, offset)
                others = [tp for tp in assigned if tp not in uncommitted]
                if others:
                    await consumer.seek_to_committed(*others)
            except Exception as e:
                raise wrap_transport_error(e, "Failed to rewind to committed offsets", transport="kafka") from e
        logger.info(
            "Rewound to committed offsets",
            extra={
                "consumer_group": self.group_id,
                "rewound_partitions": [f"{tp.topic}:{tp.partition}:{offset}" for tp, offset in uncommitted.items()],
            },
        )

    @property
    def is_running(self) -> bool:
        return self._consumer is not None


__all__ = [
    "KafkaSource",
]
