"""Order classification, validation and transformation."""

from order_bridge.transform.classifier import OrderType, classify
from order_bridge.transform.faults import (
    AlwaysFail,
    CompositeFaults,
    FailFirstAttempts,
    FaultInjector,
    NoFaults,
)
from order_bridge.transform.transformer import (
    MessageTransformer,
    extract_message_key,
)

__all__ = [
    "OrderType",
    "classify",
    "MessageTransformer",
    "extract_message_key",
    "FaultInjector",
    "NoFaults",
    "FailFirstAttempts",
    "AlwaysFail",
    "CompositeFaults",
]
