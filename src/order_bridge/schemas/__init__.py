"""Pydantic schemas for order messages, output records and retry payloads."""

from order_bridge.schemas.orders import (
    BulkOrder,
    BulkOrderEntry,
    CompletedOrderRecord,
    DeliveredOrderRecord,
    OrderItem,
    OrderRecord,
    OutputRecord,
    PriorityOrder,
    StandardOrder,
    WipOrderRecord,
)
from order_bridge.schemas.retry import DeadLetterRecord, RetryEnvelope

__all__ = [
    "OrderItem",
    "StandardOrder",
    "PriorityOrder",
    "BulkOrderEntry",
    "BulkOrder",
    "OutputRecord",
    "WipOrderRecord",
    "DeliveredOrderRecord",
    "CompletedOrderRecord",
    "OrderRecord",
    "RetryEnvelope",
    "DeadLetterRecord",
]
