"""
Shared fixtures for order bridge tests.

Provides in-memory stand-ins for the transports so workers can be exercised
without SQS or Kafka:

    InMemoryBroker    topics as lists of (key, value) pairs
    FakeSink          MessageSink appending to a broker topic
    FakeSource        MessageSource over a queue of raw bodies
    FakeTopicSource   BatchSource reading a broker topic with commit/rewind
"""

import json
from collections import defaultdict, deque
from datetime import UTC, datetime

import pytest

from core.errors.exceptions import TransportError
from order_bridge.common.producer import serialize_value
from order_bridge.common.types import ProduceResult, SourceMessage

FIXED_NOW = datetime(2024, 12, 25, 10, 30, 0, tzinfo=UTC)


class InMemoryBroker:
    def __init__(self):
        self.topics: dict[str, list[tuple[str | None, str]]] = defaultdict(list)

    def values(self, topic: str) -> list[dict]:
        return [json.loads(value) for _, value in self.topics[topic]]

    def keys(self, topic: str) -> list[str | None]:
        return [key for key, _ in self.topics[topic]]


class FakeSink:
    """Records every send; topics listed in ``fail_topics`` raise TransportError."""

    def __init__(self, broker: InMemoryBroker | None = None, fail_topics=()):
        self.broker = broker or InMemoryBroker()
        self.fail_topics = set(fail_topics)
        self.sent: list[tuple[str, str | None, str]] = []

    async def send(self, topic, key, value):
        if topic in self.fail_topics:
            raise TransportError(f"Failed to send message to {topic}", transport="fake")
        body = serialize_value(value).decode("utf-8")
        self.sent.append((topic, key, body))
        self.broker.topics[topic].append((key, body))
        return ProduceResult(topic=topic, partition=0, offset=len(self.broker.topics[topic]) - 1)


class FakeSource:
    """Queue-like source recording acknowledged and released messages."""

    def __init__(self, bodies=(), name="place-order-queue"):
        self.name = name
        self.pending: deque[SourceMessage] = deque()
        self.acked: list[SourceMessage] = []
        self.released: list[SourceMessage] = []
        self._counter = 0
        for body in bodies:
            self.add(body)

    def add(self, body) -> SourceMessage:
        if not isinstance(body, str):
            body = json.dumps(body)
        self._counter += 1
        message = SourceMessage(
            body=body,
            message_id=f"msg-{self._counter}",
            receipt_handle=f"rh-{self._counter}",
        )
        self.pending.append(message)
        return message

    async def receive(self, max_messages, wait_seconds):
        batch = []
        while self.pending and len(batch) < max_messages:
            batch.append(self.pending.popleft())
        return batch

    async def ack(self, message):
        self.acked.append(message)

    async def release(self, message):
        self.released.append(message)


class FakeTopicSource:
    """Consumer of one broker topic with a committed position."""

    def __init__(self, broker: InMemoryBroker, topic: str):
        self.broker = broker
        self.topic = topic
        self.position = 0
        self.committed = 0
        self.commits = 0
        self.rewinds = 0

    async def receive(self, max_messages, wait_seconds):
        entries = self.broker.topics[self.topic][self.position:self.position + max_messages]
        records = [
            SourceMessage(
                body=value,
                message_id=f"{self.topic}:0:{self.position + i}",
                key=key,
                topic=self.topic,
                partition=0,
                offset=self.position + i,
            )
            for i, (key, value) in enumerate(entries)
        ]
        self.position += len(records)
        return records

    async def commit(self):
        self.committed = self.position
        self.commits += 1

    async def rewind(self):
        self.position = self.committed
        self.rewinds += 1


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_sink(broker):
    """Factory for sinks sharing the test broker."""
    def _make(fail_topics=()):
        return FakeSink(broker, fail_topics=fail_topics)
    return _make


@pytest.fixture
def make_source():
    def _make(bodies=(), name="place-order-queue"):
        return FakeSource(bodies, name=name)
    return _make


@pytest.fixture
def make_topic_source(broker):
    def _make(topic):
        return FakeTopicSource(broker, topic)
    return _make


@pytest.fixture
def sleep_calls():
    """Async sleep replacement recording the requested delays."""
    calls = []

    async def _sleep(delay):
        calls.append(delay)

    _sleep.calls = calls
    return _sleep


@pytest.fixture
def standard_order():
    return {
        "orderId": "ORD-1001",
        "customerId": "CUST-42",
        "items": [
            {"productId": "P-1", "quantity": 2, "price": 9.99},
            {"productId": "P-2", "quantity": 1, "price": 24.5},
        ],
        "totalAmount": 44.48,
        "orderDate": "2024-12-25T10:30:00Z",
    }


@pytest.fixture
def priority_order(standard_order):
    return {
        **standard_order,
        "orderId": "ORD-PRIORITY-2001",
        "orderType": "PRIORITY",
        "priorityLevel": "HIGH",
        "expectedDeliveryDate": "2024-12-26T10:30:00Z",
    }


@pytest.fixture
def bulk_order():
    return {
        "orderType": "BULK",
        "batchId": "BATCH-3001",
        "customerId": "CUST-7",
        "orders": [
            {
                "orderId": "ORD-3001-1",
                "items": [
                    {"productId": "P-1", "quantity": 5, "price": 1.0},
                    {"productId": "P-2", "quantity": 5, "price": 2.0},
                ],
                "totalAmount": 15.0,
            },
            {
                "orderId": "ORD-3001-2",
                "items": [{"productId": "P-3", "quantity": 1, "price": 3.0}],
                "totalAmount": 3.0,
            },
        ],
        "totalOrderCount": 2,
        "batchTotalAmount": 18.0,
        "orderDate": "2024-12-25T10:30:00Z",
    }


@pytest.fixture
def invalid_order():
    return {"orderType": "EXPRESS", "foo": "bar"}
