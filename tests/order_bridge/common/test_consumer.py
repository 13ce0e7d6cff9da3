"""
Tests for KafkaSource.

These are unit tests that use mocks - no Docker/Kafka required.
"""

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from aiokafka.structs import TopicPartition

from config.config import KafkaConfig
from core.errors.exceptions import TransportError
from order_bridge.common.consumer import KafkaSource
from order_bridge.common.types import SourceMessage

TP0 = TopicPartition("place-order-retry-topic", 0)


def _record(offset, partition=0, key=b"ORD-1", value=b'{"a": 1}'):
    return Mock(topic="place-order-retry-topic", partition=partition, offset=offset, key=key, value=value)


def _message(offset, partition=0):
    return SourceMessage(
        body="{}",
        message_id=f"place-order-retry-topic:{partition}:{offset}",
        topic="place-order-retry-topic",
        partition=partition,
        offset=offset,
    )


@pytest.fixture
def kafka_config():
    return KafkaConfig(bootstrap_servers="localhost:9092", max_poll_records=25)


@pytest.fixture
def mock_aiokafka_consumer():
    consumer = MagicMock()
    consumer.start = AsyncMock()
    consumer.stop = AsyncMock()
    consumer.getmany = AsyncMock(return_value={})
    consumer.commit = AsyncMock()
    consumer.seek_to_committed = AsyncMock()
    consumer.assignment.return_value = {TP0}
    return consumer


async def _start_source(kafka_config, mock_aiokafka_consumer):
    source = KafkaSource(kafka_config, ["place-order-retry-topic"], worker_name="retry_worker")
    with patch("order_bridge.common.consumer.AIOKafkaConsumer", return_value=mock_aiokafka_consumer):
        await source.start()
    return source


class TestKafkaSourceInit:

    def test_requires_topics(self, kafka_config):
        with pytest.raises(ValueError, match="At least one topic"):
            KafkaSource(kafka_config, [], worker_name="retry_worker")

    def test_default_group_id(self, kafka_config):
        source = KafkaSource(kafka_config, ["t"], worker_name="retry_worker")
        assert source.group_id == "order-bridge-retry_worker"
        assert source.is_running is False

    def test_explicit_group_id(self, kafka_config):
        source = KafkaSource(kafka_config, ["t"], worker_name="retry_worker", group_id="custom")
        assert source.group_id == "custom"


class TestKafkaSourceLifecycle:

    @pytest.mark.asyncio
    async def test_start_disables_auto_commit(self, kafka_config, mock_aiokafka_consumer):
        source = KafkaSource(kafka_config, ["place-order-retry-topic"], worker_name="retry_worker")

        with patch(
            "order_bridge.common.consumer.AIOKafkaConsumer", return_value=mock_aiokafka_consumer
        ) as mock_cls:
            await source.start()

        args, kwargs = mock_cls.call_args
        assert args == ("place-order-retry-topic",)
        assert kwargs["enable_auto_commit"] is False
        assert kwargs["group_id"] == "order-bridge-retry_worker"
        assert kwargs["max_poll_records"] == 25
        assert kwargs["auto_offset_reset"] == "earliest"
        assert source.is_running is True

    @pytest.mark.asyncio
    async def test_duplicate_start_ignored(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)
        await source.start()
        mock_aiokafka_consumer.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.stop()

        mock_aiokafka_consumer.stop.assert_awaited_once()
        assert source.is_running is False

    @pytest.mark.asyncio
    async def test_receive_requires_start(self, kafka_config):
        source = KafkaSource(kafka_config, ["t"], worker_name="w")
        with pytest.raises(RuntimeError, match="not started"):
            await source.receive(10, 1.0)


class TestKafkaSourceReceive:

    @pytest.mark.asyncio
    async def test_converts_records(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.getmany.return_value = {
            TP0: [_record(5), _record(6, key=None)],
            TopicPartition("place-order-retry-topic", 1): [_record(9, partition=1)],
        }
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        messages = await source.receive(10, 2.5)

        mock_aiokafka_consumer.getmany.assert_awaited_once_with(timeout_ms=2500, max_records=10)
        assert [m.message_id for m in messages] == [
            "place-order-retry-topic:0:5",
            "place-order-retry-topic:0:6",
            "place-order-retry-topic:1:9",
        ]
        assert messages[0].key == "ORD-1"
        assert messages[0].body == '{"a": 1}'
        assert messages[1].key is None

    @pytest.mark.asyncio
    async def test_fetch_error_wrapped(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.getmany.side_effect = OSError("broker down")
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        with pytest.raises(TransportError, match="Failed to fetch records"):
            await source.receive(10, 1.0)


class TestKafkaSourceAckRelease:

    @pytest.mark.asyncio
    async def test_ack_commits_next_offset(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.ack(_message(7))

        mock_aiokafka_consumer.commit.assert_awaited_once_with({TP0: 8})

    @pytest.mark.asyncio
    async def test_release_seeks_back(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.release(_message(7))

        mock_aiokafka_consumer.seek.assert_called_once_with(TP0, 7)

    @pytest.mark.asyncio
    async def test_ack_after_release_is_held_back(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.release(_message(7))
        await source.ack(_message(8))

        mock_aiokafka_consumer.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ack_on_other_partition_not_held_back(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.release(_message(7))
        await source.ack(_message(3, partition=1))

        mock_aiokafka_consumer.commit.assert_awaited_once_with(
            {TopicPartition("place-order-retry-topic", 1): 4}
        )

    @pytest.mark.asyncio
    async def test_release_keeps_lowest_offset(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.release(_message(7))
        await source.release(_message(9))

        mock_aiokafka_consumer.seek.assert_called_once_with(TP0, 7)

    @pytest.mark.asyncio
    async def test_next_receive_clears_released(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.release(_message(7))
        await source.receive(10, 1.0)
        await source.ack(_message(7))

        mock_aiokafka_consumer.commit.assert_awaited_once_with({TP0: 8})

    @pytest.mark.asyncio
    async def test_ack_rejects_non_kafka_message(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        with pytest.raises(ValueError, match="not received from Kafka"):
            await source.ack(SourceMessage(body="{}", message_id="sqs-1", receipt_handle="rh"))

    @pytest.mark.asyncio
    async def test_commit_error_wrapped(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.commit.side_effect = OSError("rebalance")
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        with pytest.raises(TransportError, match="Failed to commit offset"):
            await source.ack(_message(1))


class TestKafkaSourceBatchPosition:

    @pytest.mark.asyncio
    async def test_commit_all_consumed(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.commit()

        mock_aiokafka_consumer.commit.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_commit_error_wrapped(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.commit.side_effect = OSError("coordinator moved")
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        with pytest.raises(TransportError, match="Failed to commit batch"):
            await source.commit()

    @pytest.mark.asyncio
    async def test_rewind_seeks_to_committed(self, kafka_config, mock_aiokafka_consumer):
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.rewind()

        mock_aiokafka_consumer.seek_to_committed.assert_awaited_once_with(TP0)
        mock_aiokafka_consumer.seek.assert_not_called()

    @pytest.mark.asyncio
    async def test_rewind_without_committed_offset_seeks_to_batch_start(
        self, kafka_config, mock_aiokafka_consumer
    ):
        # Fresh consumer group: nothing committed for the partition yet
        mock_aiokafka_consumer.committed = AsyncMock(return_value=None)
        mock_aiokafka_consumer.getmany.return_value = {TP0: [_record(0), _record(1), _record(2)]}
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.receive(10, 1.0)
        await source.rewind()

        mock_aiokafka_consumer.seek.assert_called_once_with(TP0, 0)
        mock_aiokafka_consumer.seek_to_committed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rewind_covers_every_receive_since_commit(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.getmany.side_effect = [
            {TP0: [_record(4), _record(5)]},
            {TP0: [_record(6)]},
        ]
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.receive(10, 1.0)
        await source.receive(10, 1.0)
        await source.rewind()

        mock_aiokafka_consumer.seek.assert_called_once_with(TP0, 4)

    @pytest.mark.asyncio
    async def test_rewind_mixes_fetched_and_idle_partitions(self, kafka_config, mock_aiokafka_consumer):
        tp1 = TopicPartition("place-order-retry-topic", 1)
        mock_aiokafka_consumer.assignment.return_value = {TP0, tp1}
        mock_aiokafka_consumer.getmany.return_value = {tp1: [_record(3, partition=1)]}
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.receive(10, 1.0)
        await source.rewind()

        mock_aiokafka_consumer.seek.assert_called_once_with(tp1, 3)
        mock_aiokafka_consumer.seek_to_committed.assert_awaited_once_with(TP0)

    @pytest.mark.asyncio
    async def test_commit_clears_batch_start(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.getmany.return_value = {TP0: [_record(0)]}
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.receive(10, 1.0)
        await source.commit()
        await source.rewind()

        mock_aiokafka_consumer.seek.assert_not_called()
        mock_aiokafka_consumer.seek_to_committed.assert_awaited_once_with(TP0)

    @pytest.mark.asyncio
    async def test_rewind_after_ack_starts_past_acked_record(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.getmany.return_value = {TP0: [_record(0), _record(1)]}
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.receive(10, 1.0)
        await source.ack(_message(0))
        await source.rewind()

        mock_aiokafka_consumer.seek.assert_called_once_with(TP0, 1)

    @pytest.mark.asyncio
    async def test_rewind_without_assignment_is_noop(self, kafka_config, mock_aiokafka_consumer):
        mock_aiokafka_consumer.assignment.return_value = set()
        source = await _start_source(kafka_config, mock_aiokafka_consumer)

        await source.rewind()

        mock_aiokafka_consumer.seek_to_committed.assert_not_awaited()
