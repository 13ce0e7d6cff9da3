"""
Retry Worker - Reattempts messages from the retry topic.

For each retry envelope:
1. Envelopes whose retry count reached max_retries go straight to the DLQ
2. Otherwise waits the backoff delay for its retry count
3. Transforms the original message again and forwards the record
4. On failure re-enqueues it with retry_count + 1, or sends it to the DLQ
   once the attempts are exhausted

The retry topic position is committed once per batch, after every envelope of
the batch was forwarded, re-enqueued or dead-lettered. A failed retry or DLQ
send aborts the batch; the worker rewinds to the last committed position and
the batch is processed again (at-least-once).

Consumer group: {prefix}-retry_worker
Input topic: retry topic
Output topics: destination, retry topic, DLQ topic
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from core.errors.exceptions import TransformationError, classify_exception
from core.logging import MessageLogContext, PeriodicStatsLogger, log_exception
from order_bridge.common.metrics import (
    batch_processing_duration_seconds,
    record_dlq_message,
    record_forwarded,
    record_messages_received,
    record_processing_error,
    record_retry_envelope,
    record_transformation_failure,
)
from order_bridge.common.retry.backoff import BackoffPolicy
from order_bridge.common.retry.retry_utils import (
    build_dead_letter_record,
    build_unreadable_dead_letter,
    log_retry_decision,
    next_retry_envelope,
    should_send_to_dlq,
)
from order_bridge.common.types import BatchSource, MessageSink, SourceMessage
from order_bridge.schemas.retry import RetryEnvelope
from order_bridge.transform.transformer import UNKNOWN_KEY, MessageTransformer

logger = logging.getLogger(__name__)


class RetryWorker:
    """Retry orchestrator: retry topic -> backoff -> transform -> destination, retry or DLQ."""

    WORKER_NAME = "retry_worker"

    CYCLE_LOG_INTERVAL_SECONDS = 30

    def __init__(
        self,
        source: BatchSource,
        destination: MessageSink,
        destination_topic: str,
        producer: MessageSink,
        retry_topic: str,
        dlq_topic: str,
        transformer: MessageTransformer,
        backoff: BackoffPolicy | None = None,
        max_retries: int = 3,
        max_messages: int = 10,
        wait_seconds: float = 10.0,
        error_backoff_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        """
        Args:
            source: Retry topic consumer with batch commit/rewind
            destination: Sink the output records are forwarded to
            destination_topic: Kafka topic or SQS queue URL of the destination
            producer: Kafka producer for the retry and DLQ topics
            retry_topic: Retry topic name
            dlq_topic: Dead-letter topic name
            transformer: Shared message transformer
            backoff: Delay policy per retry count
            max_retries: Attempts before a message is dead-lettered
            max_messages: Records per poll
            wait_seconds: Poll timeout
            error_backoff_seconds: Pause after a failed loop iteration
            sleep: Awaitable used for the backoff wait
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        self.source = source
        self.destination = destination
        self.destination_topic = destination_topic
        self.producer = producer
        self.retry_topic = retry_topic
        self.dlq_topic = dlq_topic
        self.transformer = transformer
        self.backoff = backoff or BackoffPolicy()
        self.max_retries = max_retries
        self.max_messages = max_messages
        self.wait_seconds = wait_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self._sleep = sleep or asyncio.sleep

        self._running = False
        self._stats_logger: PeriodicStatsLogger | None = None

        # Cycle output tracking
        self._records_processed = 0
        self._records_forwarded = 0
        self._records_retried = 0
        self._records_dead_lettered = 0

        logger.info(
            "Initialized RetryWorker",
            extra={
                "worker_name": self.WORKER_NAME,
                "retry_topic": retry_topic,
                "dlq_topic": dlq_topic,
                "destination_topic": destination_topic,
                "max_retries": max_retries,
            },
        )

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Poll and process retry batches until ``stop()`` is called."""
        logger.info("Starting RetryWorker")
        self._running = True

        self._stats_logger = PeriodicStatsLogger(
            interval_seconds=self.CYCLE_LOG_INTERVAL_SECONDS,
            get_stats=self._get_cycle_stats,
            stage="retry",
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
                        "Retry batch failed, rewinding to last committed position",
                        delay_seconds=self.error_backoff_seconds,
                    )
                    record_processing_error(self.WORKER_NAME, classify_exception(e).value)
                    await self._rewind()
                    await asyncio.sleep(self.error_backoff_seconds)
        except asyncio.CancelledError:
            logger.info("RetryWorker cancelled, shutting down...")
            raise
        finally:
            self._running = False
            await self._stats_logger.stop()
            self._stats_logger = None
            logger.info("RetryWorker stopped", extra=self._get_cycle_stats(-1))

    async def stop(self) -> None:
        """Stop after the in-flight batch completes."""
        if not self._running:
            return
        logger.info("Stopping RetryWorker")
        self._running = False

    async def process_batch(self) -> int:
        """Process one batch of retry records and commit it.

        Returns:
            Number of records received

        Raises:
            TransportError: If receiving, a retry/DLQ send or the commit fails
        """
        records = await self.source.receive(self.max_messages, self.wait_seconds)
        if not records:
            return 0

        record_messages_received(self.WORKER_NAME, len(records))
        start_time = time.perf_counter()

        for record in records:
            await self.process_record(record)

        await self.source.commit()

        batch_processing_duration_seconds.labels(worker=self.WORKER_NAME).observe(
            time.perf_counter() - start_time
        )
        logger.debug("Committed retry batch", extra={"batch_size": len(records)})
        return len(records)

    async def process_record(self, record: SourceMessage) -> None:
        """Bring one retry record to a terminal outcome for this pass."""
        self._records_processed += 1

        try:
            envelope = RetryEnvelope.model_validate_json(record.body)
        except ValidationError as e:
            await self._dead_letter_unreadable(record, e)
            return

        with MessageLogContext(
            source=self.retry_topic,
            message_id=record.message_id,
            key=envelope.message_key,
            retry_count=envelope.retry_count,
        ):
            if should_send_to_dlq(envelope.retry_count, self.max_retries):
                log_retry_decision(
                    "dlq_exhausted",
                    envelope.message_key,
                    envelope.retry_count,
                    extra_context={"max_retries": self.max_retries},
                )
                await self._send_dead_letter(
                    build_dead_letter_record(envelope, envelope.retry_count), envelope.message_key
                )
                return

            delay = self.backoff.delay(envelope.retry_count)
            logger.info(
                "Waiting before retry attempt",
                extra={
                    "delay_seconds": delay,
                    "retry_count": envelope.retry_count,
                    "max_retries": self.max_retries,
                },
            )
            await self._sleep(delay)

            try:
                output = self.transformer.transform(envelope.original_message)
                await self.destination.send(self.destination_topic, envelope.message_key, output)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self._handle_failed_attempt(envelope, e)
                return

            self._records_forwarded += 1
            record_forwarded(self.WORKER_NAME, output.order_type)
            log_retry_decision(
                "forwarded",
                envelope.message_key,
                envelope.retry_count,
                extra_context={"order_type": output.order_type, "topic": self.destination_topic},
            )

    async def _handle_failed_attempt(self, envelope: RetryEnvelope, error: Exception) -> None:
        if isinstance(error, TransformationError):
            order_type = self.transformer.classify(envelope.original_message).value
            record_transformation_failure(self.WORKER_NAME, order_type)
        else:
            record_processing_error(self.WORKER_NAME, classify_exception(error).value)

        next_count = envelope.retry_count + 1
        if should_send_to_dlq(next_count, self.max_retries):
            log_retry_decision(
                "dlq_exhausted",
                envelope.message_key,
                next_count,
                error,
                {"max_retries": self.max_retries},
            )
            await self._send_dead_letter(
                build_dead_letter_record(envelope, next_count, error), envelope.message_key
            )
            return

        retry = next_retry_envelope(envelope, error)
        await self._send(self.retry_topic, envelope.message_key, retry)
        self._records_retried += 1
        record_retry_envelope(self.WORKER_NAME)
        log_retry_decision(
            "retry",
            envelope.message_key,
            retry.retry_count,
            error,
            {"max_retries": self.max_retries, "topic": self.retry_topic},
        )

    async def _dead_letter_unreadable(self, record: SourceMessage, error: ValidationError) -> None:
        message_key = record.key or UNKNOWN_KEY
        log_retry_decision(
            "dlq_unreadable",
            message_key,
            0,
            error,
            {"message_id": record.message_id, "topic": self.retry_topic},
        )
        await self._send_dead_letter(
            build_unreadable_dead_letter(record.body, message_key, error),
            message_key,
            reason="unreadable",
        )

    async def _send_dead_letter(self, dead_letter: BaseModel, message_key: str, reason: str = "exhausted") -> None:
        await self._send(self.dlq_topic, message_key, dead_letter)
        self._records_dead_lettered += 1
        record_dlq_message(reason)

    async def _send(self, topic: str, message_key: str, value: BaseModel) -> None:
        try:
            await self.producer.send(topic, message_key, value)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.critical(
                "Failed to send to %s, retry batch will not be committed",
                "DLQ topic" if topic == self.dlq_topic else "retry topic",
                extra={
                    "topic": topic,
                    "message_key": message_key,
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:500],
                },
                exc_info=True,
            )
            raise

    async def _rewind(self) -> None:
        try:
            await self.source.rewind()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_exception(logger, e, "Failed to rewind retry consumer", include_traceback=False)

    def _get_cycle_stats(self, cycle_count: int) -> dict[str, Any]:
        """Get cycle statistics for periodic logging."""
        return {
            "records_processed": self._records_processed,
            "records_forwarded": self._records_forwarded,
            "records_retried": self._records_retried,
            "records_dead_lettered": self._records_dead_lettered,
        }


__all__ = ["RetryWorker"]
