"""
Message classification and transformation.

Turns a raw order message into the canonical output record of its variant:

    STANDARD -> WipOrderRecord        itemsCount = len(items)
    PRIORITY -> DeliveredOrderRecord  itemsCount = len(items)
    BULK     -> CompletedOrderRecord  itemsCount = sum of items over all orders

Every failure (undecodable payload, unknown variant, missing or mistyped
field, injected fault) raises TransformationError. The transformer keeps no
state between calls apart from the optional fault injector.
"""

import json
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from core.errors.exceptions import TransformationError
from order_bridge.schemas.orders import (
    BulkOrder,
    CompletedOrderRecord,
    DeliveredOrderRecord,
    OutputRecord,
    PriorityOrder,
    StandardOrder,
    WipOrderRecord,
)
from order_bridge.transform.classifier import OrderType, classify, key_field_for
from order_bridge.transform.faults import FaultInjector, NoFaults

logger = logging.getLogger(__name__)

UNKNOWN_KEY = "unknown"
NO_MATCHING_SCHEMA = "no matching schema"

RawMessage = str | bytes | Mapping[str, Any]


def _utc_now() -> datetime:
    return datetime.now(UTC)


def format_validation_error(error: ValidationError) -> str:
    """Readable one-line summary: ``"customerId: Field required; items.0.quantity: ..."``."""
    parts = []
    for detail in error.errors():
        loc = ".".join(str(p) for p in detail.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {detail.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_payload(raw: RawMessage) -> dict[str, Any]:
    """Decode a raw message into a JSON object.

    Raises:
        TransformationError: If the payload is not valid JSON or not an object
    """
    if isinstance(raw, Mapping):
        return dict(raw)

    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        payload = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
        raise TransformationError(f"malformed payload: {e}", cause=e) from e

    if not isinstance(payload, dict):
        raise TransformationError(
            f"malformed payload: expected a JSON object, got {type(payload).__name__}"
        )
    return payload


def _key_from_payload(payload: Mapping[str, Any], order_type: OrderType) -> str:
    value = payload.get(key_field_for(order_type))
    if isinstance(value, str) and value.strip():
        return value
    return UNKNOWN_KEY


def extract_message_key(raw: RawMessage) -> str:
    """Stable key of a message: batchId for BULK, orderId otherwise, "unknown" if unreadable."""
    try:
        payload = parse_payload(raw)
    except TransformationError:
        return UNKNOWN_KEY
    return _key_from_payload(payload, classify(payload))


class MessageTransformer:
    """Classifies, validates and transforms order messages.

    Args:
        fault_injector: Decides per message key whether an attempt must fail
        clock: Source of the processing timestamps (UTC)
    """

    def __init__(
        self,
        fault_injector: FaultInjector | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.fault_injector = fault_injector or NoFaults()
        self._clock = clock or _utc_now

    def classify(self, raw: RawMessage) -> OrderType:
        """Variant of ``raw``; UNKNOWN for anything that is not a JSON object."""
        try:
            return classify(parse_payload(raw))
        except TransformationError:
            return OrderType.UNKNOWN

    def extract_message_key(self, raw: RawMessage) -> str:
        return extract_message_key(raw)

    def transform(self, raw: RawMessage) -> OutputRecord:
        """Transform ``raw`` into its canonical output record.

        Raises:
            TransformationError: With a readable reason when the message can't be transformed
        """
        payload = parse_payload(raw)
        order_type = classify(payload)
        message_key = _key_from_payload(payload, order_type)
        context = {"order_type": order_type.value, "message_key": message_key}

        if order_type is OrderType.UNKNOWN:
            raise TransformationError(NO_MATCHING_SCHEMA, context=context)

        record = self._build_record(order_type, payload, context)

        if self.fault_injector.should_fail(message_key):
            raise TransformationError(
                f"injected failure for {order_type.value} order {message_key}", context=context
            )

        logger.info(
            "Transformed %s order",
            order_type.value,
            extra={
                "order_type": order_type.value,
                "message_key": record.message_key,
                "items_count": record.items_count,
            },
        )
        return record

    def _build_record(
        self,
        order_type: OrderType,
        payload: dict[str, Any],
        context: dict[str, Any],
    ) -> OutputRecord:
        try:
            if order_type is OrderType.STANDARD:
                return self._transform_standard(StandardOrder.model_validate(payload))
            if order_type is OrderType.PRIORITY:
                return self._transform_priority(PriorityOrder.model_validate(payload))
            return self._transform_bulk(BulkOrder.model_validate(payload))
        except ValidationError as e:
            raise TransformationError(
                f"invalid {order_type.value} order: {format_validation_error(e)}",
                cause=e,
                context=context,
            ) from e

    def _transform_standard(self, order: StandardOrder) -> WipOrderRecord:
        return WipOrderRecord(
            order_id=order.order_id,
            items_count=len(order.items),
            processing_started_at=self._clock(),
        )

    def _transform_priority(self, order: PriorityOrder) -> DeliveredOrderRecord:
        return DeliveredOrderRecord(
            order_id=order.order_id,
            items_count=len(order.items),
            delivered_at=self._clock(),
        )

    def _transform_bulk(self, order: BulkOrder) -> CompletedOrderRecord:
        return CompletedOrderRecord(
            batch_id=order.batch_id,
            items_count=sum(len(entry.items) for entry in order.orders),
            completed_at=self._clock(),
        )


__all__ = [
    "UNKNOWN_KEY",
    "NO_MATCHING_SCHEMA",
    "MessageTransformer",
    "extract_message_key",
    "format_validation_error",
    "parse_payload",
]
