#!/usr/bin/env python3
"""
Streaming pipe: source → transform → batch → sink.

One pipe owns one source, one sink and one batch. Records are pulled one at a
time, transformed, prepared for the sink and accumulated; a batch is written
when it reaches its record or byte threshold, when its oldest record has
waited ``batch_timeout`` seconds for more input, and once more when the source
is exhausted, followed by exactly one flush.

States::

    IDLE → RUNNING → DRAINING → DONE
                  ↘ FAILED

Record-level errors (``error.recoverable``) either abort the run or are
skipped and counted, depending on :class:`ErrorPolicy`. Every other error
aborts the run; the in-flight batch is not retried.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import orjson

from .connectors.base import RawRecord, RecordSink, RecordSource, SerializedRecord
from .converter import ValueConverter
from .errors import PipeError, SerializationError
from .observability import PipeObserver
from .offsets import ConsumerState
from .values import RecordValue

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_BATCH_BYTES = 1024 * 1024

Transform = Callable[[RawRecord], SerializedRecord]

_STOPPED = object()
_LINGER = object()


class PipeState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


class ErrorPolicy(Enum):
    """What to do with a record that fails conversion or preparation."""
    ABORT = "abort"  # fail the whole run
    SKIP = "skip"    # count it, dead-letter it if configured, continue


@dataclass
class Batch:
    """Outbound records awaiting one sink delivery."""
    max_records: int = DEFAULT_BATCH_SIZE
    max_bytes: int = DEFAULT_BATCH_BYTES
    records: List[SerializedRecord] = field(default_factory=list)
    nbytes: int = 0

    def append(self, record: SerializedRecord) -> None:
        self.records.append(record)
        self.nbytes += record.size

    @property
    def full(self) -> bool:
        return len(self.records) >= self.max_records or self.nbytes >= self.max_bytes

    def clear(self) -> None:
        self.records = []
        self.nbytes = 0

    def __len__(self) -> int:
        return len(self.records)


@dataclass
class PipeStats:
    pulled: int = 0
    processed: int = 0
    skipped: int = 0
    batches: int = 0
    bytes_written: int = 0


def passthrough(record: RawRecord) -> SerializedRecord:
    """Forward the raw payload and key unchanged."""
    return SerializedRecord(
        value=record.value, key=record.key,
        offset=record.offset, partition=record.partition,
    )


def json_rows(converter: Optional[ValueConverter] = None,
              key: Optional[bytes] = None) -> Transform:
    """Transform typed rows into compact JSON messages."""
    converter = converter or ValueConverter()

    def transform(record: RawRecord) -> SerializedRecord:
        try:
            payload = converter.row_to_json_bytes(record.value)
        except orjson.JSONEncodeError as e:
            raise SerializationError(f"Cannot encode row as JSON: {e}", record.offset) from e
        return SerializedRecord(
            value=payload,
            key=record.key if record.key is not None else key,
            offset=record.offset,
            partition=record.partition,
        )

    return transform


class StreamPipe:
    """
    Bounded-batch pipe from a record source to a record sink.

    Args:
        source: Where records come from
        sink: Where serialized records go
        transform: RawRecord → SerializedRecord (default: passthrough)
        batch_size: Records per batch
        batch_bytes: Serialized bytes per batch
        batch_timeout: Seconds a partial batch may wait for more records
            before it is written (None waits for a full batch)
        limit: Stop after pulling this many records
        error_policy: Handling of record-level errors
        dead_letter: Sink receiving rejected records under ``ErrorPolicy.SKIP``
        observer: Observability handle (progress, counters)
        consumer_state: Read positions to advance and commit
        name: Pipe name for logs and metrics

    Example:
        >>> pipe = StreamPipe(FileRowIterator('rows.parquet'), publisher, json_rows())
        >>> stats = await pipe.run()
        >>> print(stats.processed)
    """

    def __init__(self, source: RecordSource, sink: RecordSink,
                 transform: Optional[Transform] = None, *,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 batch_bytes: int = DEFAULT_BATCH_BYTES,
                 batch_timeout: Optional[float] = None,
                 limit: Optional[int] = None,
                 error_policy: ErrorPolicy = ErrorPolicy.ABORT,
                 dead_letter: Optional[RecordSink] = None,
                 observer: Optional[PipeObserver] = None,
                 consumer_state: Optional[ConsumerState] = None,
                 name: str = "pipe"):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_timeout is not None and batch_timeout < 0:
            raise ValueError("batch_timeout must not be negative")
        self.source = source
        self.sink = sink
        self.transform = transform or passthrough
        self.batch_timeout = batch_timeout
        self.limit = limit
        self.error_policy = error_policy
        self.dead_letter = dead_letter
        self.observer = observer or PipeObserver(name=name)
        self.consumer_state = consumer_state
        self.name = name

        self.stats = PipeStats()
        self._batch = Batch(max_records=batch_size, max_bytes=batch_bytes)
        self._state = PipeState.IDLE
        self._stop_requested = False
        self._pull_task: Optional[asyncio.Future] = None
        self._batch_started = 0.0

    @property
    def state(self) -> PipeState:
        return self._state

    def stop(self) -> None:
        """
        Request a cooperative stop.

        Takes effect before the next record is pulled; a pull that is
        waiting for input is abandoned. Pending records are still drained.
        """
        self._stop_requested = True
        if self._pull_task is not None:
            self._pull_task.cancel()

    async def run(self) -> PipeStats:
        """Run the pipe to completion and return its statistics."""
        if self._state is not PipeState.IDLE:
            raise RuntimeError(f"Pipe {self.name} already ran (state={self._state.value})")

        try:
            await self.source.start()
            await self.sink.start()
            if self.dead_letter is not None:
                await self.dead_letter.start()

            self._state = PipeState.RUNNING
            logger.info(f"Pipe {self.name} running")
            await self._run_loop()

            self._state = PipeState.DRAINING
            await self._drain()

            self._state = PipeState.DONE
            logger.info(
                f"Pipe {self.name} done: {self.stats.processed} processed, "
                f"{self.stats.skipped} skipped, {self.stats.batches} batches"
            )
            return self.stats

        except BaseException as e:
            self._state = PipeState.FAILED
            logger.error(f"Pipe {self.name} failed after {self.stats.processed} records: {e!r}")
            raise

        finally:
            await self._close()

    async def _run_loop(self) -> None:
        while not self._stop_requested:
            if self.limit is not None and self.stats.pulled >= self.limit:
                break

            record = await self._pull()
            if record is None or record is _STOPPED:
                break
            if record is _LINGER:
                logger.debug(f"Pipe {self.name}: delivering {len(self._batch)} records after batch timeout")
                await self._push()
                continue
            self.stats.pulled += 1

            try:
                outbound = self.sink.prepare(self.transform(record))
            except PipeError as e:
                if not e.recoverable or self.error_policy is ErrorPolicy.ABORT:
                    raise
                await self._reject(record, e)
                continue

            if not self._batch:
                self._batch_started = asyncio.get_running_loop().time()
            self._batch.append(outbound)
            self.stats.processed += 1
            self._advance(record)
            self.observer.record_processed(self.stats.processed)

            if self._batch.full:
                await self._push()

    async def _pull(self):
        # A pull abandoned by the batch timeout stays pending and is resumed here
        task = self._pull_task
        if task is None:
            task = self._pull_task = asyncio.ensure_future(self.source.next())
        try:
            done, _ = await asyncio.wait({task}, timeout=self._linger_remaining())
        except asyncio.CancelledError:
            task.cancel()
            self._pull_task = None
            raise

        if not done:
            return _LINGER
        self._pull_task = None
        if task.cancelled():
            logger.info(f"Pipe {self.name} stop requested")
            return _STOPPED
        return task.result()

    def _linger_remaining(self) -> Optional[float]:
        if self.batch_timeout is None or not self._batch:
            return None
        deadline = self._batch_started + self.batch_timeout
        return max(0.0, deadline - asyncio.get_running_loop().time())

    def _advance(self, record: RawRecord) -> None:
        if self.consumer_state is not None and record.offset is not None:
            self.consumer_state.advance(record.partition or 0, record.offset)

    async def _reject(self, record: RawRecord, error: PipeError) -> None:
        self.stats.skipped += 1
        self.observer.record_skipped(error, record.offset)
        self._advance(record)

        if self.dead_letter is None:
            return

        if isinstance(record.value, (bytes, bytearray)):
            payload = bytes(record.value)
        else:
            payload = orjson.dumps({
                "error": str(error),
                "error_type": type(error).__name__,
                "offset": record.offset,
                "columns": list(record.value.names) if isinstance(record.value, RecordValue) else None,
            })
        await self.dead_letter.write_batch([
            SerializedRecord(value=payload, key=record.key,
                             offset=record.offset, partition=record.partition)
        ])

    async def _push(self) -> None:
        if not self._batch:
            return
        records, nbytes = self._batch.records, self._batch.nbytes
        await self.sink.write_batch(records)

        self.stats.batches += 1
        self.stats.bytes_written += nbytes
        self.observer.record_batch(len(records), nbytes)
        self._batch.clear()
        await self._commit()

    async def _commit(self) -> None:
        state = self.consumer_state
        if state is None or not state.auto_commit:
            return
        positions = state.pending()
        if positions:
            await self.source.commit(positions)
            state.mark_committed(positions)

    async def _drain(self) -> None:
        await self._push()
        await self.sink.flush()
        if self.dead_letter is not None:
            await self.dead_letter.flush()
        # Skipped records at the tail still move the committed position
        await self._commit()

    async def _close(self) -> None:
        if self._pull_task is not None and not self._pull_task.done():
            self._pull_task.cancel()
        for closable in (self.dead_letter, self.sink, self.source):
            if closable is None:
                continue
            try:
                await closable.stop()
            except Exception as e:
                logger.warning(f"Pipe {self.name}: error closing {type(closable).__name__}: {e}")
