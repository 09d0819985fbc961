"""
Base connector interfaces for pqstream record sources and sinks.

Defines abstract interfaces that all connectors must implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence


@dataclass
class RawRecord:
    """
    One record pulled from a source.

    ``value`` is a :class:`~pqstream.values.RecordValue` for file sources and
    the raw payload bytes for subscriptions.
    """
    value: Any
    key: Optional[bytes] = None
    offset: Optional[int] = None
    partition: Optional[int] = None


@dataclass
class SerializedRecord:
    """
    One outbound message, ready for a sink.

    ``params`` holds bound statement parameters for table sinks.
    """
    value: bytes
    key: Optional[bytes] = None
    offset: Optional[int] = None
    partition: Optional[int] = None
    params: Optional[tuple] = None

    @property
    def size(self) -> int:
        return len(self.value or b"") + (len(self.key) if self.key else 0)


class RecordSource(ABC):
    """
    Abstract base class for record sources.

    Sources produce a lazy, single-pass sequence of :class:`RawRecord`.
    ``next()`` returns ``None`` only at definitive end of input.

    Examples:
        >>> source = FileRowIterator('data.parquet')
        >>> await source.start()
        >>> while (record := await source.next()) is not None:
        >>>     process(record)
        >>> await source.stop()
    """

    async def start(self):
        """Open the source (optional)."""
        pass

    @abstractmethod
    async def next(self) -> Optional[RawRecord]:
        """
        Pull the next record.

        Returns:
            RawRecord, or None once the input is exhausted

        Raises:
            SourceError: decode or transport failure (fatal)
        """
        pass

    async def commit(self, positions) -> None:
        """Durably record consumed positions (optional)."""
        pass

    async def stop(self):
        """Close and cleanup resources (optional)."""
        pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> RawRecord:
        record = await self.next()
        if record is None:
            raise StopAsyncIteration
        return record

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


class RecordSink(ABC):
    """
    Abstract base class for record sinks.

    ``prepare`` turns one record into its outbound form and may reject it
    with a record-level error. ``write_batch`` delivers a prepared batch and
    ``flush`` waits until everything written has been acknowledged.

    Examples:
        >>> sink = TopicPublisher(config)
        >>> await sink.start()
        >>> await sink.write_batch([sink.prepare(record)])
        >>> await sink.flush()
        >>> await sink.stop()
    """

    async def start(self):
        """Connect the sink (optional)."""
        pass

    def prepare(self, record: SerializedRecord) -> SerializedRecord:
        """
        Validate and encode one record for this sink.

        Raises:
            SerializationError: the record cannot be delivered (recoverable)
        """
        return record

    @abstractmethod
    async def write_batch(self, records: Sequence[SerializedRecord]) -> None:
        """
        Deliver one batch, preserving order.

        Raises:
            SinkError: transport or delivery failure (fatal)
        """
        pass

    async def flush(self) -> None:
        """Wait until all written records are acknowledged."""
        pass

    async def stop(self):
        """Flush buffers and close the sink (optional)."""
        pass

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()


class MemorySink(RecordSink):
    """Sink that keeps every delivered batch in memory."""

    def __init__(self):
        self.batches: List[List[SerializedRecord]] = []
        self.flushes = 0

    @property
    def records(self) -> List[SerializedRecord]:
        return [record for batch in self.batches for record in batch]

    async def write_batch(self, records: Sequence[SerializedRecord]) -> None:
        self.batches.append(list(records))

    async def flush(self) -> None:
        self.flushes += 1
