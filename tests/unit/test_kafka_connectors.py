"""
Unit Tests for the Kafka subscription source and topic publisher

Both run against in-process fakes of the aiokafka client objects.
"""

import asyncio

import pytest
from aiokafka import TopicPartition
from aiokafka.errors import KafkaConnectionError

from pqstream.connectors.base import SerializedRecord
from pqstream.errors import SerializationError, SinkTransportError, SourceTransportError
from pqstream.kafka.sink import TopicPublisher, TopicPublisherConfig
from pqstream.kafka.source import SubscriptionConfig, SubscriptionStream
from pqstream.offsets import OffsetPolicy


def _messages(fake_message, topic, partition, offsets):
    return [
        fake_message(topic, partition, offset, None, f"m{offset}".encode())
        for offset in offsets
    ]


class TestSubscriptionStream:

    def _stream(self, consumer, policy=None):
        config = SubscriptionConfig("localhost:9092", "events", policy=policy or OffsetPolicy())
        return SubscriptionStream(config, consumer_factory=consumer)

    @pytest.mark.asyncio
    async def test_reads_from_beginning(self, fake_consumer, fake_message):
        consumer = fake_consumer("events", {0: _messages(fake_message, "events", 0, range(3))})
        stream = self._stream(consumer)

        async with stream:
            pulled = [await stream.next() for _ in range(3)]

        assert [r.value for r in pulled] == [b"m0", b"m1", b"m2"]
        assert [r.offset for r in pulled] == [0, 1, 2]
        assert consumer.config['enable_auto_commit'] is False
        assert consumer.assigned == [TopicPartition("events", 0)]
        assert consumer.stopped

    @pytest.mark.asyncio
    async def test_from_end(self, fake_consumer, fake_message):
        consumer = fake_consumer("events", {0: _messages(fake_message, "events", 0, range(5))})
        stream = self._stream(consumer, OffsetPolicy.from_options(end=2))

        await stream.start()
        assert consumer.positions == {0: 3}
        assert (await stream.next()).offset == 3
        await stream.stop()

    @pytest.mark.asyncio
    async def test_absolute_start_is_clamped(self, fake_consumer, fake_message):
        consumer = fake_consumer("events", {0: _messages(fake_message, "events", 0, range(2, 6))})
        stream = self._stream(consumer, OffsetPolicy.from_options(start=0))

        await stream.start()
        assert consumer.positions == {0: 2}
        await stream.stop()

    @pytest.mark.asyncio
    async def test_resumes_from_committed_position(self, fake_consumer, fake_message):
        consumer = fake_consumer(
            "events", {0: _messages(fake_message, "events", 0, range(5))}, committed={0: 4}
        )
        stream = self._stream(consumer, OffsetPolicy.from_options(end=0, group_id="g"))

        await stream.start()
        assert consumer.config['group_id'] == "g"
        assert consumer.positions == {0: 4}
        await stream.stop()

    @pytest.mark.asyncio
    async def test_commit_with_group(self, fake_consumer, fake_message):
        consumer = fake_consumer("events", {0: [], 1: []})
        stream = self._stream(consumer, OffsetPolicy.from_options(group_id="g"))

        await stream.start()
        await stream.commit({0: 3, 1: 7})
        await stream.stop()

        assert consumer.commits == [{TopicPartition("events", 0): 3, TopicPartition("events", 1): 7}]

    @pytest.mark.asyncio
    async def test_commit_without_group_is_skipped(self, fake_consumer):
        consumer = fake_consumer("events", {0: []})
        stream = self._stream(consumer)

        await stream.start()
        await stream.commit({0: 3})
        await stream.stop()

        assert consumer.commits == []

    @pytest.mark.asyncio
    async def test_missing_topic(self, fake_consumer):
        consumer = fake_consumer("other", {0: []})
        stream = self._stream(consumer)

        with pytest.raises(SourceTransportError):
            await stream.start()
        assert consumer.stopped

    @pytest.mark.asyncio
    async def test_transport_failure_while_reading(self, fake_consumer):
        consumer = fake_consumer("events", {0: []})
        stream = self._stream(consumer)
        await stream.start()

        consumer.fail_next = KafkaConnectionError("connection lost")
        with pytest.raises(SourceTransportError):
            await stream.next()
        await stream.stop()

    @pytest.mark.asyncio
    async def test_next_waits_for_new_records(self, fake_consumer):
        consumer = fake_consumer("events", {0: []})
        stream = self._stream(consumer)
        await stream.start()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(stream.next(), timeout=0.05)
        await stream.stop()


class TestTopicPublisher:

    def _publisher(self, producer, **kwargs):
        config = TopicPublisherConfig("localhost:9092", "parquet", **kwargs)
        return TopicPublisher(config, producer_factory=producer)

    def test_prepare_encodes_text_and_applies_default_key(self, fake_producer):
        publisher = self._publisher(fake_producer(), default_key=b"key")

        prepared = publisher.prepare(SerializedRecord("héllo"))
        assert prepared.value == "héllo".encode("utf-8")
        assert prepared.key == b"key"

        keyed = publisher.prepare(SerializedRecord(b"v", key=b"own"))
        assert keyed.key == b"own"

    def test_prepare_rejects_other_types(self, fake_producer):
        publisher = self._publisher(fake_producer())
        with pytest.raises(SerializationError):
            publisher.prepare(SerializedRecord({"a": 1}, offset=3))

    @pytest.mark.asyncio
    async def test_write_batch_in_order(self, fake_producer):
        producer = fake_producer()
        publisher = self._publisher(producer)

        async with publisher:
            await publisher.write_batch([SerializedRecord(b"1", key=b"k"), SerializedRecord(b"2")])
            await publisher.flush()

        assert producer.sent == [("parquet", b"k", b"1"), ("parquet", None, b"2")]
        assert publisher.sent == 2
        assert producer.flushes == 1
        assert producer.stopped

    @pytest.mark.asyncio
    async def test_producer_settings(self, fake_producer):
        producer = fake_producer()
        publisher = self._publisher(producer)
        await publisher.start()
        await publisher.stop()

        assert producer.config['compression_type'] == "gzip"
        assert producer.config['max_batch_size'] == 1024 * 1024
        assert producer.config['max_request_size'] == 10 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_connect_failure(self, fake_producer):
        publisher = self._publisher(fake_producer(fail_start=True))
        with pytest.raises(SinkTransportError):
            await publisher.start()

    @pytest.mark.asyncio
    async def test_rejected_delivery(self, fake_producer):
        publisher = self._publisher(fake_producer(ack="error"))
        await publisher.start()
        with pytest.raises(SinkTransportError):
            await publisher.write_batch([SerializedRecord(b"1")])
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_ack_timeout(self, fake_producer):
        publisher = self._publisher(fake_producer(ack="never"), flush_timeout=0.05)
        await publisher.start()
        with pytest.raises(SinkTransportError):
            await publisher.write_batch([SerializedRecord(b"1")])
        await publisher.stop()
