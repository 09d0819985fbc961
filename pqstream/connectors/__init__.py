"""
Record connectors for pqstream.

Sources produce raw records; sinks deliver serialized ones.
"""

from .base import RawRecord, SerializedRecord, RecordSource, RecordSink, MemorySink
from .parquet import FileRowIterator
from .duckdb_sink import TableAppender

__all__ = [
    'RawRecord',
    'SerializedRecord',
    'RecordSource',
    'RecordSink',
    'MemorySink',
    'FileRowIterator',
    'TableAppender',
]
