"""
Tests for worker runners.

Test Coverage:
    - Cleanup watcher task with cancellation
    - Start with retry logic and linear backoff
    - Worker execution with shutdown handling
    - Resource cleanup of the bridge and retry runners
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from config.config import DIRECTION_KAFKA_TO_SQS, BridgeConfig
from order_bridge.common.consumer import KafkaSource
from order_bridge.runners import (
    DEFAULT_STARTUP_RETRIES,
    WORKER_RUNNERS,
    _cleanup_watcher_task,
    _start_with_retry,
    execute_worker_with_shutdown,
    run_bridge_worker,
    run_retry_worker,
)
from order_bridge.transform.transformer import MessageTransformer


class TestCleanupWatcherTask:

    @pytest.mark.asyncio
    async def test_cancels_and_awaits_task(self):
        async def watcher():
            await asyncio.sleep(10)

        task = asyncio.create_task(watcher())
        await asyncio.sleep(0.01)

        await _cleanup_watcher_task(task)

        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_suppresses_runtime_error(self):
        async def watcher():
            raise RuntimeError("Event loop closed")

        task = asyncio.create_task(watcher())
        await asyncio.sleep(0.01)

        await _cleanup_watcher_task(task)


class TestStartWithRetry:

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        start_fn = AsyncMock()

        await _start_with_retry(start_fn, "producer")

        start_fn.assert_called_once()

    @pytest.mark.asyncio
    async def test_retries_with_linear_backoff(self):
        start_fn = AsyncMock(side_effect=[ConnectionError("refused"), ConnectionError("refused"), None])

        with patch("order_bridge.runners.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await _start_with_retry(start_fn, "producer", max_retries=5, backoff_base=2)

        assert start_fn.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 4]

    @pytest.mark.asyncio
    async def test_raises_after_default_attempts(self):
        start_fn = AsyncMock(side_effect=ConnectionError("refused"))

        with (
            patch("order_bridge.runners.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
            pytest.raises(ConnectionError),
        ):
            await _start_with_retry(start_fn, "producer")

        assert mock_sleep.call_count == DEFAULT_STARTUP_RETRIES - 1

    @pytest.mark.asyncio
    async def test_uses_env_var_config(self):
        start_fn = AsyncMock(side_effect=ConnectionError("refused"))

        with (
            patch("order_bridge.runners.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
            patch.dict("os.environ", {"STARTUP_MAX_RETRIES": "2", "STARTUP_BACKOFF_SECONDS": "10"}),
            pytest.raises(ConnectionError),
        ):
            await _start_with_retry(start_fn, "producer")

        mock_sleep.assert_called_once_with(10)

    @pytest.mark.asyncio
    async def test_no_retry_during_shutdown(self):
        start_fn = AsyncMock(side_effect=ConnectionError("refused"))
        shutdown_event = asyncio.Event()
        shutdown_event.set()

        with pytest.raises(ConnectionError):
            await _start_with_retry(start_fn, "producer", shutdown_event=shutdown_event)

        start_fn.assert_called_once()


class _BlockingWorker:
    WORKER_NAME = "bridge_worker"

    def __init__(self):
        self._stopped = asyncio.Event()
        self.stop_calls = 0

    async def start(self):
        await self._stopped.wait()

    async def stop(self):
        self.stop_calls += 1
        self._stopped.set()


class TestExecuteWorkerWithShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_event_stops_worker(self):
        worker = _BlockingWorker()
        shutdown_event = asyncio.Event()

        task = asyncio.create_task(execute_worker_with_shutdown(worker, "bridge", shutdown_event))
        await asyncio.sleep(0.01)
        shutdown_event.set()
        await asyncio.wait_for(task, timeout=5)

        assert worker.stop_calls == 1

    @pytest.mark.asyncio
    async def test_worker_failure_still_stops(self):
        worker = Mock(WORKER_NAME="retry_worker")
        worker.start = AsyncMock(side_effect=RuntimeError("fatal"))
        worker.stop = AsyncMock()

        with pytest.raises(RuntimeError, match="fatal"):
            await execute_worker_with_shutdown(worker, "retry", asyncio.Event())

        worker.stop.assert_awaited_once()


@pytest.fixture
def transports():
    """Patch the transport factories used by the runners."""
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()
    sqs_connection = MagicMock()
    sqs_connection.close = AsyncMock()
    kafka_source = MagicMock(spec=KafkaSource)
    kafka_source.group_id = "order-bridge-retry_worker"
    kafka_source.start = AsyncMock()
    kafka_source.stop = AsyncMock()
    destination = MagicMock()

    with (
        patch("order_bridge.runners.create_producer", return_value=producer),
        patch("order_bridge.runners.create_sqs_connection", return_value=sqs_connection),
        patch("order_bridge.runners.create_retry_source", return_value=kafka_source),
        patch("order_bridge.runners.create_source", return_value=(kafka_source, "place-order-topic")),
        patch("order_bridge.runners.create_destination", return_value=(destination, "queue-url")),
        patch("order_bridge.runners.execute_worker_with_shutdown", new_callable=AsyncMock) as execute,
    ):
        yield Mock(
            producer=producer,
            sqs_connection=sqs_connection,
            source=kafka_source,
            destination=destination,
            execute=execute,
        )


class TestRunners:

    def test_registered_runners(self):
        assert WORKER_RUNNERS == {"bridge": run_bridge_worker, "retry": run_retry_worker}

    @pytest.mark.asyncio
    async def test_bridge_runner_starts_and_stops_clients(self, transports):
        config = BridgeConfig(direction=DIRECTION_KAFKA_TO_SQS)

        await run_bridge_worker(config, MessageTransformer(), asyncio.Event())

        transports.producer.start.assert_awaited_once()
        transports.source.start.assert_awaited_once()
        worker = transports.execute.call_args.args[0]
        assert worker.destination is transports.destination
        assert worker.destination_topic == "queue-url"
        assert worker.retry_sink is transports.producer
        assert worker.max_messages == config.kafka.max_poll_records
        transports.source.stop.assert_awaited_once()
        transports.producer.stop.assert_awaited_once()
        transports.sqs_connection.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_runner_wires_retry_config(self, transports):
        config = BridgeConfig()
        config.retry.max_retries = 5

        await run_retry_worker(config, MessageTransformer(), asyncio.Event())

        worker = transports.execute.call_args.args[0]
        assert worker.max_retries == 5
        assert worker.retry_topic == "place-order-retry-topic"
        assert worker.dlq_topic == "place-order-dlq-topic"
        assert worker.producer is transports.producer
        assert transports.execute.call_args.args[1] == "retry"

    @pytest.mark.asyncio
    async def test_cleanup_after_start_failure(self, transports):
        transports.producer.start.side_effect = ConnectionError("refused")

        with (
            patch("order_bridge.runners.asyncio.sleep", new_callable=AsyncMock),
            pytest.raises(ConnectionError),
        ):
            await run_retry_worker(BridgeConfig(), MessageTransformer(), asyncio.Event())

        transports.execute.assert_not_awaited()
        transports.producer.stop.assert_awaited_once()
        transports.sqs_connection.close.assert_awaited_once()
