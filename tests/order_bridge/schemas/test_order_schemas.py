"""Tests for order input variants and output records."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from order_bridge.schemas.orders import (
    DELIVERY_LOCATION,
    BulkOrder,
    CompletedOrderRecord,
    DeliveredOrderRecord,
    OrderItem,
    PriorityOrder,
    StandardOrder,
    WipOrderRecord,
)

NOW = datetime(2024, 12, 25, 10, 30, 0, tzinfo=UTC)


class TestOrderItem:

    def test_parses_item(self):
        item = OrderItem.model_validate({"productId": "P-1", "quantity": 2, "price": 9.99})
        assert item.product_id == "P-1"
        assert item.quantity == 2

    def test_integer_price_accepted(self):
        item = OrderItem.model_validate({"productId": "P-1", "quantity": 2, "price": 10})
        assert item.price == 10.0

    def test_string_quantity_rejected(self):
        with pytest.raises(ValidationError):
            OrderItem.model_validate({"productId": "P-1", "quantity": "2", "price": 1.0})

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError):
            OrderItem.model_validate({"productId": "P-1", "quantity": -1, "price": 1.0})


class TestStandardOrder:

    def test_parses_order(self, standard_order):
        order = StandardOrder.model_validate(standard_order)

        assert order.order_id == "ORD-1001"
        assert order.customer_id == "CUST-42"
        assert len(order.items) == 2
        assert order.total_amount == 44.48

    def test_unknown_fields_ignored(self, standard_order):
        order = StandardOrder.model_validate({**standard_order, "orderType": "STANDARD", "note": "x"})
        assert order.order_id == "ORD-1001"

    def test_missing_customer_rejected(self, standard_order):
        del standard_order["customerId"]
        with pytest.raises(ValidationError, match="customerId"):
            StandardOrder.model_validate(standard_order)

    def test_numeric_order_id_rejected(self, standard_order):
        standard_order["orderId"] = 1001
        with pytest.raises(ValidationError):
            StandardOrder.model_validate(standard_order)

    def test_whitespace_order_id_rejected(self, standard_order):
        standard_order["orderId"] = "   "
        with pytest.raises(ValidationError, match="cannot be empty"):
            StandardOrder.model_validate(standard_order)

    def test_empty_items_allowed(self, standard_order):
        standard_order["items"] = []
        assert StandardOrder.model_validate(standard_order).items == []


class TestPriorityOrder:

    def test_parses_order(self, priority_order):
        order = PriorityOrder.model_validate(priority_order)

        assert order.priority_level == "HIGH"
        assert order.expected_delivery_date == "2024-12-26T10:30:00Z"

    def test_requires_priority_fields(self, standard_order):
        with pytest.raises(ValidationError, match="priorityLevel"):
            PriorityOrder.model_validate(standard_order)


class TestBulkOrder:

    def test_parses_order(self, bulk_order):
        order = BulkOrder.model_validate(bulk_order)

        assert order.batch_id == "BATCH-3001"
        assert len(order.orders) == 2
        assert order.total_order_count == 2

    def test_total_order_count_must_be_integer(self, bulk_order):
        bulk_order["totalOrderCount"] = "2"
        with pytest.raises(ValidationError):
            BulkOrder.model_validate(bulk_order)

    def test_nested_item_validated(self, bulk_order):
        del bulk_order["orders"][1]["items"][0]["productId"]
        with pytest.raises(ValidationError, match="productId"):
            BulkOrder.model_validate(bulk_order)


class TestOutputRecords:

    def test_wip_record_json(self):
        record = WipOrderRecord(order_id="ORD-1", items_count=2, processing_started_at=NOW)

        assert json.loads(record.model_dump_json()) == {
            "itemsCount": 2,
            "orderId": "ORD-1",
            "status": "WIP",
            "processingStartedAt": "2024-12-25T10:30:00Z",
        }
        assert record.message_key == "ORD-1"
        assert record.order_type == "STANDARD"

    def test_delivered_record_json(self):
        record = DeliveredOrderRecord(order_id="ORD-2", items_count=1, delivered_at=NOW)

        data = json.loads(record.model_dump_json())

        assert data["status"] == "DELIVERED"
        assert data["deliveredAt"] == "2024-12-25T10:30:00Z"
        assert data["deliveryLocation"] == DELIVERY_LOCATION
        assert record.order_type == "PRIORITY"

    def test_completed_record_json(self):
        record = CompletedOrderRecord(batch_id="BATCH-1", items_count=3, completed_at=NOW)

        data = json.loads(record.model_dump_json())

        assert data["batchId"] == "BATCH-1"
        assert data["status"] == "COMPLETED"
        assert data["completedAt"] == "2024-12-25T10:30:00Z"
        assert data["customerConfirmation"] is True
        assert record.message_key == "BATCH-1"
        assert record.order_type == "BULK"

    def test_message_key_follows_key_field(self):
        delivered = DeliveredOrderRecord(order_id="ORD-2", items_count=1, delivered_at=NOW)
        completed = CompletedOrderRecord(batch_id="BATCH-1", items_count=3, completed_at=NOW)

        assert delivered.key_field == "order_id"
        assert delivered.message_key == "ORD-2"
        assert completed.key_field == "batch_id"
        assert completed.message_key == "BATCH-1"

    def test_key_field_not_serialized(self):
        record = CompletedOrderRecord(batch_id="BATCH-1", items_count=3, completed_at=NOW)
        assert "keyField" not in record.model_dump(by_alias=True)
        assert "key_field" not in record.model_dump()

    def test_order_type_not_serialized(self):
        record = WipOrderRecord(order_id="ORD-1", items_count=0, processing_started_at=NOW)
        assert "orderType" not in record.model_dump()

    def test_records_are_immutable(self):
        record = WipOrderRecord(order_id="ORD-1", items_count=2, processing_started_at=NOW)
        with pytest.raises(ValidationError):
            record.items_count = 3

    def test_status_is_fixed(self):
        with pytest.raises(ValidationError):
            WipOrderRecord(order_id="ORD-1", items_count=2, processing_started_at=NOW, status="DONE")
