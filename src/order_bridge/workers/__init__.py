"""Bridge and retry workers."""

from order_bridge.workers.bridge_worker import BridgeWorker
from order_bridge.workers.retry_worker import RetryWorker

__all__ = [
    "BridgeWorker",
    "RetryWorker",
]
