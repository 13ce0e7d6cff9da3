"""Worker execution with consistent startup, shutdown and resource cleanup.

Each ``run_*`` function owns the transport clients of its worker: it creates
them, starts them with retry, runs the worker until the shutdown event is set
and stops the clients again.
"""

import asyncio
import logging
import os
from collections.abc import Callable

from config.config import BridgeConfig
from core.logging.context import set_log_context
from core.logging.setup import log_worker_startup
from core.utils.worker_id import generate_worker_id
from order_bridge.common.consumer import KafkaSource
from order_bridge.common.retry.backoff import BackoffPolicy
from order_bridge.common.transport import (
    create_destination,
    create_producer,
    create_retry_source,
    create_source,
    create_sqs_connection,
)
from order_bridge.transform.transformer import MessageTransformer
from order_bridge.workers.bridge_worker import BridgeWorker
from order_bridge.workers.retry_worker import RetryWorker

logger = logging.getLogger(__name__)

# Startup retry configuration (overridable via env vars)
DEFAULT_STARTUP_RETRIES = 5
DEFAULT_STARTUP_BACKOFF_BASE = 5  # seconds


async def _cleanup_watcher_task(task: asyncio.Task) -> None:
    """Cancel and await watcher task, suppressing expected exceptions."""
    try:
        task.cancel()
        await task
    except (asyncio.CancelledError, RuntimeError):
        pass


async def _start_with_retry(
    start_fn: Callable,
    label: str,
    max_retries: int | None = None,
    backoff_base: int | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Retry an async start function with linear backoff.

    On exhaustion, re-raises the last exception.

    Args:
        start_fn: Async callable (e.g. producer.start, consumer.start)
        label: Human-readable label for log messages
        max_retries: Number of attempts (default: 5, env: STARTUP_MAX_RETRIES)
        backoff_base: Base seconds for backoff (default: 5, env: STARTUP_BACKOFF_SECONDS)
        shutdown_event: If set, skip retries during shutdown
    """
    max_retries = max_retries or int(os.getenv("STARTUP_MAX_RETRIES", str(DEFAULT_STARTUP_RETRIES)))
    backoff_base = backoff_base or int(
        os.getenv("STARTUP_BACKOFF_SECONDS", str(DEFAULT_STARTUP_BACKOFF_BASE))
    )

    for attempt in range(1, max_retries + 1):
        try:
            await start_fn()
            return
        except Exception as e:
            if shutdown_event and shutdown_event.is_set():
                logger.info(f"Shutdown in progress, not retrying {label}")
                raise
            if attempt == max_retries:
                logger.error(
                    f"Failed to start {label} after {max_retries} attempts, giving up",
                    extra={"error": str(e), "attempts": max_retries},
                )
                raise
            delay = backoff_base * attempt
            logger.warning(
                f"Failed to start {label} (attempt {attempt}/{max_retries}), retrying in {delay}s",
                extra={"error": str(e), "attempt": attempt, "delay": delay},
            )
            await asyncio.sleep(delay)


async def execute_worker_with_shutdown(
    worker_instance,
    stage_name: str,
    shutdown_event: asyncio.Event,
) -> None:
    """Run a worker until it returns or the shutdown event is set.

    Args:
        worker_instance: Worker with blocking start() and cooperative stop()
        stage_name: Name for logging context
        shutdown_event: Event to signal graceful shutdown
    """
    worker_id = generate_worker_id(worker_instance.WORKER_NAME.replace("_", "-"))
    set_log_context(stage=stage_name, worker_id=worker_id)
    logger.info("Starting %s...", stage_name, extra={"worker_id": worker_id})

    worker_stopped = False

    async def shutdown_watcher():
        nonlocal worker_stopped
        await shutdown_event.wait()
        logger.info(f"Shutdown signal received, stopping {stage_name}...")
        await worker_instance.stop()
        worker_stopped = True

    watcher_task = asyncio.create_task(shutdown_watcher())

    try:
        await worker_instance.start()
    finally:
        await _cleanup_watcher_task(watcher_task)
        if not worker_stopped:
            await worker_instance.stop()


async def run_bridge_worker(
    config: BridgeConfig,
    transformer: MessageTransformer,
    shutdown_event: asyncio.Event,
) -> None:
    """Primary path: source -> destination, failures to the retry topic."""
    worker_name = BridgeWorker.WORKER_NAME
    sqs_connection = create_sqs_connection(config)
    producer = create_producer(config, worker_name)
    source, source_name = create_source(config, worker_name, sqs_connection)
    destination, destination_topic = create_destination(config, producer, sqs_connection)

    log_worker_startup(
        logger,
        worker_name,
        source=source_name,
        destination=destination_topic,
        consumer_group=source.group_id if isinstance(source, KafkaSource) else None,
        extra_config={
            "Direction": config.direction,
            "Retry topic": config.kafka.retry_topic,
        },
    )

    try:
        await _start_with_retry(producer.start, "bridge producer", shutdown_event=shutdown_event)
        if isinstance(source, KafkaSource):
            await _start_with_retry(source.start, "bridge consumer", shutdown_event=shutdown_event)
            max_messages, wait_seconds = config.kafka.max_poll_records, config.kafka.poll_timeout_ms / 1000
        else:
            max_messages, wait_seconds = config.sqs.max_messages, config.sqs.wait_time_seconds

        worker = BridgeWorker(
            source=source,
            destination=destination,
            destination_topic=destination_topic,
            retry_sink=producer,
            retry_topic=config.kafka.retry_topic,
            transformer=transformer,
            max_messages=max_messages,
            wait_seconds=wait_seconds,
            error_backoff_seconds=config.error_backoff_seconds,
            source_name=source_name,
        )

        await execute_worker_with_shutdown(worker, "bridge", shutdown_event)
    finally:
        if isinstance(source, KafkaSource):
            await source.stop()
        await producer.stop()
        await sqs_connection.close()


async def run_retry_worker(
    config: BridgeConfig,
    transformer: MessageTransformer,
    shutdown_event: asyncio.Event,
) -> None:
    """Retry path: retry topic -> destination, retry topic or DLQ."""
    worker_name = RetryWorker.WORKER_NAME
    sqs_connection = create_sqs_connection(config)
    producer = create_producer(config, worker_name)
    source = create_retry_source(config, worker_name)
    destination, destination_topic = create_destination(config, producer, sqs_connection)

    log_worker_startup(
        logger,
        worker_name,
        source=config.kafka.retry_topic,
        destination=destination_topic,
        consumer_group=source.group_id,
        extra_config={
            "DLQ topic": config.kafka.dlq_topic,
            "Max retries": config.retry.max_retries,
        },
    )

    try:
        await _start_with_retry(producer.start, "retry producer", shutdown_event=shutdown_event)
        await _start_with_retry(source.start, "retry consumer", shutdown_event=shutdown_event)

        worker = RetryWorker(
            source=source,
            destination=destination,
            destination_topic=destination_topic,
            producer=producer,
            retry_topic=config.kafka.retry_topic,
            dlq_topic=config.kafka.dlq_topic,
            transformer=transformer,
            backoff=BackoffPolicy.from_config(config.retry),
            max_retries=config.retry.max_retries,
            max_messages=config.kafka.max_poll_records,
            wait_seconds=config.kafka.poll_timeout_ms / 1000,
            error_backoff_seconds=config.error_backoff_seconds,
        )
        await execute_worker_with_shutdown(worker, "retry", shutdown_event)
    finally:
        await source.stop()
        await producer.stop()
        await sqs_connection.close()


WORKER_RUNNERS = {
    "bridge": run_bridge_worker,
    "retry": run_retry_worker,
}


__all__ = [
    "WORKER_RUNNERS",
    "execute_worker_with_shutdown",
    "run_bridge_worker",
    "run_retry_worker",
]
