"""Transport selection for the two bridge directions.

Factory functions create the source, destination and retry-topic clients
based on ``bridge.direction``:

- ``sqs_to_kafka`` (default): orders are received from the SQS queue and the
  canonical records are produced to the Kafka orders topic
- ``kafka_to_sqs``: orders are consumed from the Kafka orders topic and the
  records are sent to the SQS queue

The retry and dead-letter topics are Kafka topics in both directions.
"""

import logging

from config.config import DIRECTION_SQS_TO_KAFKA, BridgeConfig
from order_bridge.common.consumer import KafkaSource
from order_bridge.common.producer import MessageProducer
from order_bridge.common.sqs import SQSConnectionManager, SqsSink, SqsSource
from order_bridge.common.types import MessageSink, MessageSource

logger = logging.getLogger(__name__)


def create_producer(config: BridgeConfig, worker_name: str) -> MessageProducer:
    """Kafka producer for the destination (Kafka direction), retry and DLQ topics."""
    return MessageProducer(config=config.kafka, worker_name=worker_name)


def create_source(
    config: BridgeConfig,
    worker_name: str,
    sqs_connection: SQSConnectionManager | None = None,
) -> tuple[MessageSource, str]:
    """Source of new orders for the configured direction.

    Returns:
        (source, source name) where the name is the queue URL or topic

    Raises:
        ValueError: If the SQS direction is configured without an SQS connection
    """
    if config.direction == DIRECTION_SQS_TO_KAFKA:
        if sqs_connection is None:
            raise ValueError("SQS connection required for the sqs_to_kafka direction")
        source = SqsSource(
            sqs_connection,
            queue_url=config.sqs.queue_url,
            visibility_timeout=config.sqs.visibility_timeout,
        )
        source_name = config.sqs.queue_url
    else:
        source = KafkaSource(
            config=config.kafka,
            topics=[config.kafka.orders_topic],
            worker_name=worker_name,
        )
        source_name = config.kafka.orders_topic

    logger.info(
        "Created bridge source",
        extra={"direction": config.direction, "source": source_name, "worker_name": worker_name},
    )
    return source, source_name


def create_destination(
    config: BridgeConfig,
    producer: MessageProducer,
    sqs_connection: SQSConnectionManager | None = None,
) -> tuple[MessageSink, str]:
    """Destination sink and topic (or queue URL) for the configured direction.

    Raises:
        ValueError: If the Kafka-to-SQS direction is configured without an SQS connection
    """
    if config.direction == DIRECTION_SQS_TO_KAFKA:
        return producer, config.kafka.orders_topic

    if sqs_connection is None:
        raise ValueError("SQS connection required for the kafka_to_sqs direction")
    return SqsSink(sqs_connection), config.sqs.queue_url


def create_retry_source(config: BridgeConfig, worker_name: str) -> KafkaSource:
    """Consumer of the retry topic."""
    return KafkaSource(
        config=config.kafka,
        topics=[config.kafka.retry_topic],
        worker_name=worker_name,
    )


def create_sqs_connection(config: BridgeConfig) -> SQSConnectionManager:
    return SQSConnectionManager.from_config(config.sqs)


__all__ = [
    "create_producer",
    "create_source",
    "create_destination",
    "create_retry_source",
    "create_sqs_connection",
]
