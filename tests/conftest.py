# -*- coding: utf-8 -*-
"""Pytest configuration for pqstream tests."""

import asyncio
from collections import namedtuple
from typing import Dict, List, Optional

import pytest

import pyarrow as pa
import pyarrow.parquet as pq
from aiokafka.errors import KafkaConnectionError

from pqstream.connectors.base import RawRecord, RecordSource


FakeMessage = namedtuple("FakeMessage", "topic partition offset key value")


class ListSource(RecordSource):
    """In-memory source. Exceptions in ``records`` are raised when pulled."""

    def __init__(self, records, block_at_end: bool = False):
        self.records = list(records)
        self.block_at_end = block_at_end
        self.pulls = 0
        self.started = False
        self.stopped = False
        self.commits: List[Dict[int, int]] = []

    async def start(self):
        self.started = True

    async def next(self) -> Optional[RawRecord]:
        if self.pulls < len(self.records):
            record = self.records[self.pulls]
            self.pulls += 1
            if isinstance(record, Exception):
                raise record
            return record
        if self.block_at_end:
            # Behaves like an idle subscription
            await asyncio.Event().wait()
        return None

    async def commit(self, positions):
        self.commits.append(dict(positions))

    async def stop(self):
        self.stopped = True


class FakeProducer:
    """Stand-in for AIOKafkaProducer; also acts as its own factory."""

    def __init__(self, ack: str = "ok", fail_start: bool = False):
        self.ack = ack  # ok, error, never
        self.fail_start = fail_start
        self.config = None
        self.sent = []
        self.flushes = 0
        self.started = False
        self.stopped = False

    def __call__(self, **config):
        self.config = config
        return self

    async def start(self):
        if self.fail_start:
            raise KafkaConnectionError("broker unavailable")
        self.started = True

    async def send(self, topic, value=None, key=None):
        self.sent.append((topic, key, value))
        future = asyncio.get_running_loop().create_future()
        if self.ack == "ok":
            future.set_result(len(self.sent) - 1)
        elif self.ack == "error":
            future.set_exception(KafkaConnectionError("leader not available"))
        return future

    async def flush(self):
        self.flushes += 1

    async def stop(self):
        self.stopped = True


class FakeConsumer:
    """Stand-in for AIOKafkaConsumer over fixed per-partition messages."""

    def __init__(self, topic: str, messages: Dict[int, List[FakeMessage]],
                 committed: Optional[Dict[int, int]] = None):
        self.topic = topic
        self.messages = messages
        self.committed_offsets = committed or {}
        self.config = None
        self.assigned = []
        self.positions: Dict[int, int] = {}
        self.commits = []
        self.started = False
        self.stopped = False
        self.fail_next = None

    def __call__(self, **config):
        self.config = config
        return self

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    async def topics(self):
        return {self.topic}

    def partitions_for_topic(self, topic):
        if topic != self.topic:
            return None
        return set(self.messages)

    def assign(self, partitions):
        self.assigned = list(partitions)

    async def beginning_offsets(self, partitions):
        return {
            tp: (self.messages[tp.partition][0].offset if self.messages[tp.partition] else 0)
            for tp in partitions
        }

    async def end_offsets(self, partitions):
        return {
            tp: (self.messages[tp.partition][-1].offset + 1 if self.messages[tp.partition] else 0)
            for tp in partitions
        }

    async def committed(self, tp):
        return self.committed_offsets.get(tp.partition)

    def seek(self, tp, offset):
        self.positions[tp.partition] = offset

    async def getone(self):
        if self.fail_next is not None:
            raise self.fail_next
        for partition in sorted(self.positions):
            position = self.positions[partition]
            for message in self.messages[partition]:
                if message.offset >= position:
                    self.positions[partition] = message.offset + 1
                    return message
        await asyncio.Event().wait()

    async def commit(self, offsets):
        self.commits.append(dict(offsets))


def make_records(values, partition: int = 0, first_offset: int = 0) -> List[RawRecord]:
    return [
        RawRecord(value=value, offset=first_offset + i, partition=partition)
        for i, value in enumerate(values)
    ]


@pytest.fixture
def list_source():
    """Factory for in-memory sources."""
    return ListSource


@pytest.fixture
def records():
    """Factory for RawRecords with sequential offsets."""
    return make_records


@pytest.fixture
def fake_producer():
    return FakeProducer


@pytest.fixture
def fake_consumer():
    return FakeConsumer


@pytest.fixture
def fake_message():
    return FakeMessage


@pytest.fixture
def sample_arrow_table():
    """Create a small Arrow Table covering the common column types."""
    return pa.table({
        'id': pa.array([1, 2, 3], type=pa.int64()),
        'name': pa.array(['alpha', None, 'gamma'], type=pa.string()),
        'score': pa.array([1.5, 2.25, None], type=pa.float64()),
    })


@pytest.fixture
def parquet_file(tmp_path, sample_arrow_table):
    """Write the sample table to a parquet file."""
    path = tmp_path / "sample.parquet"
    pq.write_table(sample_arrow_table, path)
    return path


@pytest.fixture
def timestamp_parquet_file(tmp_path):
    """Three events with millisecond timestamps; the last two straddle midnight."""
    table = pa.table({
        'id': pa.array([1, 2, 3], type=pa.int64()),
        'ts': pa.array([1_000, 86_399_999, 86_400_000], type=pa.timestamp('ms')),
    })
    path = tmp_path / "events.parquet"
    pq.write_table(table, path)
    return path


@pytest.fixture
def make_parquet(tmp_path):
    """Write an arbitrary table to a parquet file under tmp_path."""
    def _make(table: pa.Table, name: str = "data.parquet", **kwargs):
        path = tmp_path / name
        pq.write_table(table, path, **kwargs)
        return path
    return _make


# Custom markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that cross several components"
    )
