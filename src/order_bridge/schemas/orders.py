"""
Order message schemas.

Input variants (received from the source transport):
    StandardOrder  -> WipOrderRecord        status "WIP"
    PriorityOrder  -> DeliveredOrderRecord  status "DELIVERED"
    BulkOrder      -> CompletedOrderRecord  status "COMPLETED"

Inputs are validated strictly: strings are not coerced from numbers and
integers are not coerced from strings. Output records are immutable and
serialize with camelCase field names.
"""

from datetime import datetime
from typing import ClassVar, List, Literal, Union

from pydantic import Field, field_serializer, field_validator

from order_bridge.schemas.base import WireModel, format_timestamp

DELIVERY_LOCATION = "Delivery location from logistics system"


# =============================================================================
# Input variants
# =============================================================================


class OrderInput(WireModel):
    """Base for inbound order variants: strict types, unknown fields ignored."""

    model_config = {
        "populate_by_name": True,
        "strict": True,
        "extra": "ignore",
    }


class OrderItem(OrderInput):
    """One line item of an order."""

    product_id: str = Field(..., alias="productId", min_length=1)
    quantity: int = Field(..., ge=0)
    price: float = Field(..., ge=0)


class StandardOrder(OrderInput):
    """Schema for STANDARD orders.

    Example:
        >>> StandardOrder.model_validate({
        ...     "orderId": "ORD-1001",
        ...     "customerId": "CUST-1",
        ...     "items": [{"productId": "P-1", "quantity": 2, "price": 9.99}],
        ...     "totalAmount": 19.98,
        ...     "orderDate": "2024-12-25T10:30:00Z",
        ... })
    """

    order_id: str = Field(..., alias="orderId", min_length=1)
    customer_id: str = Field(..., alias="customerId", min_length=1)
    items: List[OrderItem] = Field(...)
    total_amount: float = Field(..., alias="totalAmount")
    order_date: str = Field(..., alias="orderDate", min_length=1)

    @field_validator("order_id", "customer_id", "order_date")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure identifiers are not whitespace-only."""
        if not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v


class PriorityOrder(StandardOrder):
    """Schema for PRIORITY orders: a standard order with delivery urgency."""

    priority_level: str = Field(..., alias="priorityLevel", min_length=1)
    expected_delivery_date: str = Field(..., alias="expectedDeliveryDate", min_length=1)


class BulkOrderEntry(OrderInput):
    """One order inside a bulk batch."""

    order_id: str = Field(..., alias="orderId", min_length=1)
    items: List[OrderItem] = Field(...)
    total_amount: float = Field(..., alias="totalAmount")


class BulkOrder(OrderInput):
    """Schema for BULK orders: a batch of orders for one customer.

    ``totalOrderCount`` is validated as an integer but never used for counts;
    item counts are always derived from the nested collections.
    """

    batch_id: str = Field(..., alias="batchId", min_length=1)
    customer_id: str = Field(..., alias="customerId", min_length=1)
    orders: List[BulkOrderEntry] = Field(...)
    total_order_count: int = Field(..., alias="totalOrderCount", ge=0)
    batch_total_amount: float = Field(..., alias="batchTotalAmount")
    order_date: str = Field(..., alias="orderDate", min_length=1)

    @field_validator("batch_id", "customer_id", "order_date")
    @classmethod
    def validate_non_empty_strings(cls, v: str, info) -> str:
        """Ensure identifiers are not whitespace-only."""
        if not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty or whitespace")
        return v


# =============================================================================
# Output records
# =============================================================================


class OutputRecord(WireModel):
    """Base for canonical records forwarded to the destination."""

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    order_type: ClassVar[str] = "UNKNOWN"
    # Attribute holding the stable message key
    key_field: ClassVar[str] = "order_id"
    items_count: int = Field(..., alias="itemsCount", ge=0)

    @property
    def message_key(self) -> str:
        return getattr(self, self.key_field)


class WipOrderRecord(OutputRecord):
    """STANDARD order accepted for processing."""

    order_type: ClassVar[str] = "STANDARD"
    order_id: str = Field(..., alias="orderId")
    status: Literal["WIP"] = "WIP"
    processing_started_at: datetime = Field(..., alias="processingStartedAt")

    @field_serializer("processing_started_at")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return format_timestamp(timestamp)


class DeliveredOrderRecord(OutputRecord):
    """PRIORITY order handed to delivery."""

    order_type: ClassVar[str] = "PRIORITY"
    order_id: str = Field(..., alias="orderId")
    status: Literal["DELIVERED"] = "DELIVERED"
    delivered_at: datetime = Field(..., alias="deliveredAt")
    delivery_location: str = Field(default=DELIVERY_LOCATION, alias="deliveryLocation")

    @field_serializer("delivered_at")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return format_timestamp(timestamp)


class CompletedOrderRecord(OutputRecord):
    """BULK batch completed and confirmed by the customer."""

    order_type: ClassVar[str] = "BULK"
    key_field: ClassVar[str] = "batch_id"
    batch_id: str = Field(..., alias="batchId")
    status: Literal["COMPLETED"] = "COMPLETED"
    completed_at: datetime = Field(..., alias="completedAt")
    customer_confirmation: bool = Field(default=True, alias="customerConfirmation")

    @field_serializer("completed_at")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return format_timestamp(timestamp)


OrderRecord = Union[WipOrderRecord, DeliveredOrderRecord, CompletedOrderRecord]

__all__ = [
    "DELIVERY_LOCATION",
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
]
