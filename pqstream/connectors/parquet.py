"""
Parquet file source for pqstream.

Reads a parquet file chunk by chunk through ``pyarrow.parquet`` and yields one
typed row at a time. Any decode failure is fatal for the run.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

import pyarrow as pa
import pyarrow.parquet as pq

from ..arrow_values import batch_rows
from ..errors import DecodeError, EndOfInput
from ..values import Row
from .base import RawRecord, RecordSource

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50_000


class FileRowIterator(RecordSource):
    """
    Row source over a parquet file.

    Rows are decoded one record batch (``chunk_size`` rows) at a time, so
    memory stays bounded by the chunk rather than the file.

    Args:
        path: Parquet file path
        chunk_size: Rows decoded per chunk
        columns: Optional column projection

    Example:
        >>> async with FileRowIterator('events.parquet') as source:
        >>>     async for record in source:
        >>>         print(record.offset, record.value)
    """

    def __init__(self, path: Union[str, Path], chunk_size: int = DEFAULT_CHUNK_SIZE,
                 columns: Optional[List[str]] = None):
        self.path = Path(path)
        self.chunk_size = chunk_size
        self.columns = columns
        self._file: Optional[pq.ParquetFile] = None
        self._batches: Optional[Iterator[pa.RecordBatch]] = None
        self._rows: Iterator[Row] = iter(())
        self._row_index = 0
        self._exhausted = False

    @property
    def schema(self) -> pa.Schema:
        if self._file is None:
            raise RuntimeError("FileRowIterator not started")
        return self._file.schema_arrow

    @property
    def num_rows(self) -> int:
        if self._file is None:
            raise RuntimeError("FileRowIterator not started")
        return self._file.metadata.num_rows

    async def start(self):
        if self._file is not None:
            return
        try:
            self._file = pq.ParquetFile(self.path)
            self._batches = self._file.iter_batches(
                batch_size=self.chunk_size, columns=self.columns
            )
        except (OSError, pa.ArrowException) as e:
            raise DecodeError(f"Cannot open parquet file {self.path}: {e}") from e
        logger.info(
            f"FileRowIterator opened: {self.path} "
            f"({self._file.metadata.num_rows} rows, {self._file.num_row_groups} row groups)"
        )

    def _next_chunk(self) -> bool:
        try:
            batch = next(self._batches)
        except StopIteration:
            return False
        except (OSError, pa.ArrowException) as e:
            raise DecodeError(f"Failed to decode {self.path} near row {self._row_index}: {e}") from e
        try:
            self._rows = batch_rows(batch)
        except TypeError as e:
            raise DecodeError(f"Unsupported column in {self.path}: {e}") from e
        logger.debug(f"Decoded chunk of {batch.num_rows} rows from {self.path}")
        return True

    async def next(self) -> Optional[RawRecord]:
        if self._exhausted:
            raise EndOfInput(f"{self.path} already exhausted")
        if self._file is None:
            await self.start()

        while True:
            row = next(self._rows, None)
            if row is not None:
                record = RawRecord(value=row, offset=self._row_index)
                self._row_index += 1
                return record
            if not self._next_chunk():
                self._exhausted = True
                return None
            # Let other tasks run between chunks
            await asyncio.sleep(0)

    async def stop(self):
        if self._file is not None:
            self._file.close()
            self._file = None
            self._batches = None
