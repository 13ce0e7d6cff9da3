"""Sample order messages for manual end-to-end testing.

``send_samples`` publishes them to the bridge source: the SQS queue for the
``sqs_to_kafka`` direction, the Kafka orders topic for ``kafka_to_sqs``.
The ``retry`` and ``dlq`` samples are only routed to the retry topic and the
DLQ when the runner is started with matching fault flags
(``--fail-once-keys ORD-RETRY-90001 --fail-keys ORD-DLQ-90001``).
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from config.config import DIRECTION_SQS_TO_KAFKA, BridgeConfig
from order_bridge.common.transport import create_producer, create_sqs_connection
from order_bridge.common.sqs import SqsSink
from order_bridge.transform.transformer import extract_message_key

logger = logging.getLogger(__name__)

SAMPLE_ORDERS: dict[str, dict[str, Any]] = {
    "standard": {
        "orderId": "ORD-90001",
        "customerId": "CUST-44556",
        "items": [
            {"productId": "PROD-111", "quantity": 1, "price": 899.99},
            {"productId": "PROD-222", "quantity": 2, "price": 129.50},
        ],
        "totalAmount": 1158.99,
        "orderDate": "2025-12-09T14:20:00Z",
    },
    "priority": {
        "orderId": "ORD-PRIORITY-90002",
        "customerId": "CUST-77889",
        "items": [
            {"productId": "PROD-555", "quantity": 3, "price": 249.99},
            {"productId": "PROD-666", "quantity": 1, "price": 599.00},
        ],
        "totalAmount": 1348.97,
        "orderDate": "2025-12-09T08:00:00Z",
        "priorityLevel": "URGENT",
        "expectedDeliveryDate": "2025-12-09T20:00:00Z",
    },
    "bulk": {
        "batchId": "BATCH-90003",
        "customerId": "CUST-99001",
        "orders": [
            {
                "orderId": "ORD-BULK-001",
                "items": [{"productId": "PROD-333", "quantity": 10, "price": 45.50}],
                "totalAmount": 455.00,
            },
            {
                "orderId": "ORD-BULK-002",
                "items": [
                    {"productId": "PROD-444", "quantity": 5, "price": 89.99},
                    {"productId": "PROD-555", "quantity": 3, "price": 249.99},
                ],
                "totalAmount": 1199.92,
            },
            {
                "orderId": "ORD-BULK-003",
                "items": [{"productId": "PROD-666", "quantity": 20, "price": 12.75}],
                "totalAmount": 255.00,
            },
        ],
        "totalOrderCount": 3,
        "batchTotalAmount": 1909.92,
        "orderDate": "2025-12-07T12:00:00Z",
    },
    "invalid": {
        "invalidField": "This does not match any schema",
        "random": "data",
    },
    "retry": {
        "orderType": "STANDARD",
        "orderId": "ORD-RETRY-90001",
        "customerId": "CUST-RETRY-001",
        "items": [{"productId": "PROD-RETRY-111", "quantity": 1, "price": 99.99}],
        "totalAmount": 99.99,
        "orderDate": "2026-01-19T10:00:00Z",
    },
    "dlq": {
        "orderType": "PRIORITY",
        "orderId": "ORD-DLQ-90001",
        "customerId": "CUST-DLQ-001",
        "items": [{"productId": "PROD-DLQ-555", "quantity": 2, "price": 199.99}],
        "totalAmount": 399.98,
        "orderDate": "2026-01-19T11:00:00Z",
        "priorityLevel": "HIGH",
        "expectedDeliveryDate": "2026-01-20T18:00:00Z",
    },
}

DEFAULT_SAMPLES = ("standard", "priority", "bulk", "invalid")


def build_samples(names: Iterable[str] | None = None) -> list[tuple[str, str]]:
    """(message key, JSON body) pairs for the named samples.

    Raises:
        KeyError: If a name is not a known sample
    """
    selected = list(names) if names else list(DEFAULT_SAMPLES)
    unknown = [name for name in selected if name not in SAMPLE_ORDERS]
    if unknown:
        raise KeyError(f"Unknown sample(s): {', '.join(unknown)}. Known: {', '.join(SAMPLE_ORDERS)}")

    samples = []
    for name in selected:
        body = json.dumps(SAMPLE_ORDERS[name])
        samples.append((extract_message_key(body), body))
    return samples


async def send_samples(config: BridgeConfig, names: Iterable[str] | None = None) -> int:
    """Publish sample orders to the bridge source. Returns the number sent."""
    samples = build_samples(names)

    if config.direction == DIRECTION_SQS_TO_KAFKA:
        connection = create_sqs_connection(config)
        sink, target = SqsSink(connection), config.sqs.queue_url
        try:
            for key, body in samples:
                await sink.send(target, key, body)
                logger.info("Sent sample order", extra={"message_key": key, "queue_url": target})
        finally:
            await connection.close()
        return len(samples)

    producer = create_producer(config, "sample_sender")
    target = config.kafka.orders_topic
    await producer.start()
    try:
        for key, body in samples:
            await producer.send(target, key, body)
            logger.info("Sent sample order", extra={"message_key": key, "topic": target})
    finally:
        await producer.stop()
    return len(samples)


__all__ = [
    "SAMPLE_ORDERS",
    "DEFAULT_SAMPLES",
    "build_samples",
    "send_samples",
]
