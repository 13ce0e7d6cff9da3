"""
Bridge Worker - Receives orders from the source transport and forwards records.

Entry point of the bridge:
1. Receives raw order messages from the source (SQS queue, or Kafka topic in
   the inverse deployment)
2. Transforms each message into its canonical output record
3. Forwards the record to the destination keyed by the stable message key
4. Routes messages that fail transformation to the retry topic

A source message is acknowledged only once its record is confirmed by the
destination or its retry envelope is confirmed by the retry topic. Anything
else leaves the message unacknowledged and it is redelivered by the source.
"""

import asyncio
import logging
import time
from typing import Any

from core.errors.exceptions import TransformationError, classify_exception
from core.logging import MessageLogContext, PeriodicStatsLogger, log_exception
from order_bridge.common.metrics import (
    batch_processing_duration_seconds,
    record_forwarded,
    record_messages_received,
    record_processing_error,
    record_retry_envelope,
    record_transformation_failure,
)
from order_bridge.common.retry.retry_utils import build_retry_envelope, log_retry_decision
from order_bridge.common.types import MessageSink, MessageSource, SourceMessage
from order_bridge.transform.transformer import MessageTransformer

logger = logging.getLogger(__name__)


class BridgeWorker:
    """Primary orchestrator: source -> transform -> destination or retry topic.

    Args:
        source: Source transport (receive/ack/release)
        destination: Sink the output records are forwarded to
        destination_topic: Kafka topic or SQS queue URL of the destination
        retry_sink: Sink of the retry topic
        retry_topic: Retry topic name
        transformer: Shared message transformer
        max_messages: Batch size per receive call
        wait_seconds: Long-poll wait per receive call
        error_backoff_seconds: Pause after a failed loop iteration
        source_name: Queue URL or topic, used in log context
    """

    WORKER_NAME = "bridge_worker"

    CYCLE_LOG_INTERVAL_SECONDS = 30

    def __init__(
        self,
        source: MessageSource,
        destination: MessageSink,
        destination_topic: str,
        retry_sink: MessageSink,
        retry_topic: str,
        transformer: MessageTransformer,
        max_messages: int = 10,
        wait_seconds: float = 20,
        error_backoff_seconds: float = 5.0,
        source_name: str | None = None,
    ):
        self.source = source
        self.destination = destination
        self.destination_topic = destination_topic
        self.retry_sink = retry_sink
        self.retry_topic = retry_topic
        self.transformer = transformer
        self.max_messages = max_messages
        self.wait_seconds = wait_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.source_name = source_name

        self._running = False
        self._stats_logger: PeriodicStatsLogger | None = None

        # Cycle output tracking
        self._records_processed = 0
        self._records_forwarded = 0
        self._records_retried = 0
        self._records_failed = 0

        logger.info(
            "Initialized BridgeWorker",
            extra={
                "worker_name": self.WORKER_NAME,
                "destination_topic": destination_topic,
                "retry_topic": retry_topic,
                "batch_size": max_messages,
            },
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Receive and process batches until ``stop()`` is called."""
        logger.info("Starting BridgeWorker")
        self._running = True

        self._stats_logger = PeriodicStatsLogger(
            interval_seconds=self.CYCLE_LOG_INTERVAL_SECONDS,
            get_stats=self._get_cycle_stats,
            stage="bridge",
            worker_id=self.WORKER_NAME,
        )
        self._stats_logger.start()

        try:
            while self._running:
                try:
                    await self.process_batch()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    log_exception(
                        logger,
                        e,
                        "Error in bridge loop, backing off",
                        delay_seconds=self.error_backoff_seconds,
                    )
                    record_processing_error(self.WORKER_NAME, classify_exception(e).value)
                    await asyncio.sleep(self.error_backoff_seconds)
        except asyncio.CancelledError:
            logger.info("BridgeWorker cancelled, shutting down...")
            raise
        finally:
            self._running = False
            await self._stats_logger.stop()
            self._stats_logger = None
            logger.info("BridgeWorker stopped", extra=self._get_cycle_stats(-1))

    async def stop(self) -> None:
        """Stop after the in-flight batch completes."""
        if not self._running:
            return
        logger.info("Stopping BridgeWorker")
        self._running = False

    async def process_batch(self) -> int:
        """Receive one batch and process every message in it.

        Returns:
            Number of messages received

        Raises:
            TransportError: If the receive call fails
        """
        messages = await self.source.receive(self.max_messages, self.wait_seconds)
        if not messages:
            return 0

        record_messages_received(self.WORKER_NAME, len(messages))
        start_time = time.perf_counter()

        for message in messages:
            await self.process_message(message)

        batch_processing_duration_seconds.labels(worker=self.WORKER_NAME).observe(
            time.perf_counter() - start_time
        )
        logger.debug("Processed batch", extra={"batch_size": len(messages)})
        return len(messages)

    async def process_message(self, message: SourceMessage) -> None:
        self._records_processed += 1
        message_key = self.transformer.extract_message_key(message.body)

        with MessageLogContext(source=self.source_name, message_id=message.message_id, key=message_key):
            try:
                record = self.transformer.transform(message.body)
            except TransformationError as e:
                await self._send_to_retry(message, message_key, e)
                return
            except Exception as e:
                log_exception(logger, e, "Unexpected transformation error, releasing message")
                record_processing_error(self.WORKER_NAME, classify_exception(e).value)
                self._records_failed += 1
                await self._release(message)
                return

            try:
                result = await self.destination.send(self.destination_topic, record.message_key, record)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Failed to forward record, releasing message",
                    topic=self.destination_topic,
                )
                record_processing_error(self.WORKER_NAME, classify_exception(e).value)
                self._records_failed += 1
                await self._release(message)
                return

            self._records_forwarded += 1
            record_forwarded(self.WORKER_NAME, record.order_type)
            logger.info(
                "Forwarded record",
                extra={
                    "order_type": record.order_type,
                    "items_count": record.items_count,
                    "topic": result.topic,
                    "partition": result.partition,
                    "offset": result.offset,
                },
            )
            await self._ack(message)

    async def _send_to_retry(self, message: SourceMessage, message_key: str, error: TransformationError) -> None:
        order_type = self.transformer.classify(message.body).value
        record_transformation_failure(self.WORKER_NAME, order_type)

        envelope = build_retry_envelope(message.body, message_key, error)
        try:
            await self.retry_sink.send(self.retry_topic, message_key, envelope)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.critical(
                "Failed to send message to retry topic, message left unacknowledged",
                extra={
                    "topic": self.retry_topic,
                    "order_type": order_type,
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:500],
                },
                exc_info=True,
            )
            record_processing_error(self.WORKER_NAME, classify_exception(e).value)
            self._records_failed += 1
            await self._release(message)
            return

        self._records_retried += 1
        record_retry_envelope(self.WORKER_NAME)
        log_retry_decision(
            "retry",
            message_key,
            envelope.retry_count,
            error,
            {"order_type": order_type, "topic": self.retry_topic},
        )
        await self._ack(message)

    async def _ack(self, message: SourceMessage) -> None:
        try:
            await self.source.ack(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The source redelivers it after its visibility timeout or rebalance
            log_exception(logger, e, "Failed to acknowledge message, it will be redelivered")

    async def _release(self, message: SourceMessage) -> None:
        try:
            await self.source.release(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_exception(logger, e, "Failed to release message", include_traceback=False)

    def _get_cycle_stats(self, cycle_count: int) -> dict[str, Any]:
        """Get cycle statistics for periodic logging."""
        return {
            "records_processed": self._records_processed,
            "records_forwarded": self._records_forwarded,
            "records_retried": self._records_retried,
            "records_failed": self._records_failed,
        }


__all__ = ["BridgeWorker"]
