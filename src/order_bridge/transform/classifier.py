"""Order variant classification."""

from collections.abc import Mapping
from enum import Enum
from typing import Any


class OrderType(str, Enum):
    STANDARD = "STANDARD"
    PRIORITY = "PRIORITY"
    BULK = "BULK"
    UNKNOWN = "UNKNOWN"


DISCRIMINATOR_FIELD = "orderType"

# Shape detection when the discriminator is absent. Checked in this order;
# a variant matches when any of its marker fields is present.
SHAPE_MARKERS: tuple[tuple[OrderType, frozenset[str]], ...] = (
    (OrderType.BULK, frozenset({"batchId", "orders"})),
    (OrderType.PRIORITY, frozenset({"priorityLevel", "expectedDeliveryDate"})),
    (OrderType.STANDARD, frozenset({"orderId", "items"})),
)

_KNOWN_TAGS = {t.value: t for t in OrderType if t is not OrderType.UNKNOWN}


def classify(payload: Mapping[str, Any]) -> OrderType:
    """Determine the order variant of a decoded message.

    The ``orderType`` discriminator wins when present (case-insensitive); a
    present but unrecognized value is UNKNOWN. Without it the variant is
    detected from marker fields.
    """
    if DISCRIMINATOR_FIELD in payload:
        tag = payload[DISCRIMINATOR_FIELD]
        if not isinstance(tag, str):
            return OrderType.UNKNOWN
        return _KNOWN_TAGS.get(tag.strip().upper(), OrderType.UNKNOWN)

    for order_type, markers in SHAPE_MARKERS:
        if markers.intersection(payload.keys()):
            return order_type
    return OrderType.UNKNOWN


def key_field_for(order_type: OrderType) -> str:
    """Field holding the stable message key for ``order_type``."""
    return "batchId" if order_type is OrderType.BULK else "orderId"


__all__ = [
    "OrderType",
    "DISCRIMINATOR_FIELD",
    "SHAPE_MARKERS",
    "classify",
    "key_field_for",
]
