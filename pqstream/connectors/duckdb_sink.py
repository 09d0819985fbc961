"""
DuckDB table appender for pqstream.

Inserts JSON events into an analytical table. Field values always travel as
bound statement parameters; only validated identifiers appear in SQL text.
"""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import duckdb
import orjson

from ..errors import ConfigError, SerializationError, SinkTransportError
from .base import RecordSink, SerializedRecord

import logging
logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_COLUMNS = ("id", "timestamp", "payload")


def quote_identifier(name: str) -> str:
    """Validate and double-quote a table or column name."""
    if not _IDENTIFIER.match(name):
        raise ConfigError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def _column_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return orjson.dumps(value).decode('utf-8')


@dataclass
class TableAppender(RecordSink):
    """
    DuckDB-backed sink appending one row per JSON event.

    Each record must be a UTF-8 JSON object holding every configured column.
    Non-string field values are stored as their JSON text.

    Examples:
        >>> sink = TableAppender(database='events.duckdb', table='events')
        >>> await sink.start()
        >>> record = sink.prepare(SerializedRecord(b'{"id": "1", "timestamp": "t", "payload": "p"}'))
        >>> await sink.write_batch([record])
        >>> await sink.stop()

    Args:
        database: Database path (default: in-memory)
        table: Target table
        columns: Columns filled from the event's fields of the same name
        create_table: Create the table (all VARCHAR columns) if missing
        connection: Existing DuckDB connection to use instead of opening one
    """

    database: str = ':memory:'
    table: str = 'events'
    columns: Tuple[str, ...] = DEFAULT_COLUMNS
    create_table: bool = True
    connection: Optional[duckdb.DuckDBPyConnection] = None

    # Internal state
    _insert_sql: str = field(default='', init=False, repr=False)
    _owns_connection: bool = field(default=False, init=False, repr=False)
    _total_rows: int = field(default=0, init=False, repr=False)

    def __post_init__(self):
        """Validate identifiers and build the insert statement."""
        if not self.columns:
            raise ConfigError("TableAppender needs at least one column")
        table = quote_identifier(self.table)
        cols = ", ".join(quote_identifier(c) for c in self.columns)
        placeholders = ", ".join("?" for _ in self.columns)
        self._insert_sql = f"INSERT INTO {table} ({cols}) VALUES ({placeholders})"

        logger.info(f"TableAppender initialized: database={self.database}, table={self.table}")

    @property
    def total_rows(self) -> int:
        return self._total_rows

    async def start(self):
        if self.connection is None:
            try:
                self.connection = duckdb.connect(self.database)
            except duckdb.Error as e:
                raise SinkTransportError(f"Cannot open DuckDB database {self.database}: {e}") from e
            self._owns_connection = True

        if self.create_table:
            cols = ", ".join(f"{quote_identifier(c)} VARCHAR" for c in self.columns)
            self.connection.execute(
                f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.table)} ({cols})"
            )

    def prepare(self, record: SerializedRecord) -> SerializedRecord:
        """Decode the JSON event and bind its column values."""
        if record.value is None:
            raise SerializationError("Empty event record", record.offset)
        try:
            event = orjson.loads(record.value)
        except orjson.JSONDecodeError as e:
            raise SerializationError(f"Event is not valid UTF-8 JSON: {e}", record.offset) from e

        if not isinstance(event, dict):
            raise SerializationError(
                f"Event must be a JSON object, got {type(event).__name__}", record.offset
            )

        missing = [c for c in self.columns if c not in event]
        if missing:
            raise SerializationError(f"Event is missing fields {missing}", record.offset)

        params = tuple(_column_text(event[c]) for c in self.columns)
        return SerializedRecord(
            value=record.value, key=record.key, offset=record.offset,
            partition=record.partition, params=params,
        )

    async def write_batch(self, records: Sequence[SerializedRecord]) -> None:
        """Insert a batch of prepared records in one statement."""
        if not records:
            return
        if self.connection is None:
            await self.start()

        rows: List[tuple] = [record.params for record in records]
        try:
            self.connection.executemany(self._insert_sql, rows)
        except duckdb.Error as e:
            raise SinkTransportError(f"Insert into {self.table} failed: {e}") from e

        self._total_rows += len(rows)
        logger.debug(f"Inserted {len(rows)} rows into {self.table}")

        # Yield to event loop
        await asyncio.sleep(0)

    async def stop(self):
        """Close the connection if this sink opened it."""
        if self.connection is not None and self._owns_connection:
            self.connection.close()
            self.connection = None
            self._owns_connection = False

        logger.info(f"TableAppender closed: {self._total_rows} total rows written")
