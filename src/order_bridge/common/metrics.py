"""
Prometheus metrics for bridge monitoring.

Focused on essential metrics:
- Messages received from the source and records forwarded
- Retry envelopes produced and dead-letter records written
- Transformation failures by order type
- Batch processing duration
- Connection health
"""

from prometheus_client import Counter, Gauge, Histogram

# Message counts
messages_received_counter = Counter(
    "bridge_messages_received_total",
    "Total number of messages received from a source",
    labelnames=["worker"],
)

records_forwarded_counter = Counter(
    "bridge_records_forwarded_total",
    "Total number of canonical records forwarded to the destination",
    labelnames=["worker", "order_type"],
)

messages_produced_counter = Counter(
    "bridge_messages_produced_total",
    "Total number of messages produced to topics or queues",
    labelnames=["topic"],
)

producer_errors_counter = Counter(
    "bridge_producer_errors_total",
    "Total producer errors by error type",
    labelnames=["topic", "error_type"],
)

# Retry and dead-letter tracking
transformation_failures_counter = Counter(
    "bridge_transformation_failures_total",
    "Total transformation failures by order type",
    labelnames=["worker", "order_type"],
)

retry_envelopes_counter = Counter(
    "bridge_retry_envelopes_total",
    "Total retry envelopes emitted to the retry topic",
    labelnames=["worker"],
)

dlq_messages_counter = Counter(
    "bridge_dlq_messages_total",
    "Total messages written to the dead-letter topic",
    labelnames=["reason"],
)

processing_errors_counter = Counter(
    "bridge_processing_errors_total",
    "Total loop-level processing errors by error category",
    labelnames=["worker", "error_category"],
)

# Connection health
connection_status_gauge = Gauge(
    "bridge_connection_status",
    "Transport connection status (1=connected, 0=disconnected)",
    labelnames=["component"],
)

batch_processing_duration_seconds = Histogram(
    "bridge_batch_processing_duration_seconds",
    "Time spent processing one received batch",
    labelnames=["worker"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0],
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_messages_received(worker: str, count: int) -> None:
    """Record a received batch."""
    if count:
        messages_received_counter.labels(worker=worker).inc(count)


def record_forwarded(worker: str, order_type: str) -> None:
    """Record a forwarded record."""
    records_forwarded_counter.labels(worker=worker, order_type=order_type).inc()


def record_message_produced(topic: str, success: bool = True) -> None:
    """Record a produced message."""
    messages_produced_counter.labels(topic=topic).inc()
    if not success:
        producer_errors_counter.labels(topic=topic, error_type="send_failed").inc()


def record_producer_error(topic: str, error_type: str) -> None:
    """Record a producer error."""
    producer_errors_counter.labels(topic=topic, error_type=error_type).inc()


def record_transformation_failure(worker: str, order_type: str) -> None:
    """Record a message that failed classification or validation."""
    transformation_failures_counter.labels(worker=worker, order_type=order_type).inc()


def record_retry_envelope(worker: str) -> None:
    """Record an envelope emitted to the retry topic."""
    retry_envelopes_counter.labels(worker=worker).inc()


def record_dlq_message(reason: str) -> None:
    """Record a message written to the dead-letter topic."""
    dlq_messages_counter.labels(reason=reason).inc()


def record_processing_error(worker: str, error_category: str) -> None:
    """Record a loop-level processing error."""
    processing_errors_counter.labels(worker=worker, error_category=error_category).inc()


def update_connection_status(component: str, connected: bool) -> None:
    """Update transport connection status."""
    connection_status_gauge.labels(component=component).set(1 if connected else 0)


__all__ = [
    # Metrics
    "messages_received_counter",
    "records_forwarded_counter",
    "messages_produced_counter",
    "producer_errors_counter",
    "transformation_failures_counter",
    "retry_envelopes_counter",
    "dlq_messages_counter",
    "processing_errors_counter",
    "connection_status_gauge",
    "batch_processing_duration_seconds",
    # Helper functions
    "record_messages_received",
    "record_forwarded",
    "record_message_produced",
    "record_producer_error",
    "record_transformation_failure",
    "record_retry_envelope",
    "record_dlq_message",
    "record_processing_error",
    "update_connection_status",
]
