# -*- coding: utf-8 -*-
"""
pqstream - stream parquet rows and topic records between systems.

Converts parquet rows to JSON messages and moves records from a topic to
another topic, an OTLP/HTTP metrics collector or an analytical table.

Example:
    >>> from pqstream import StreamPipe, FileRowIterator, TopicPublisher, json_rows
    >>> pipe = StreamPipe(FileRowIterator('rows.parquet'), publisher, json_rows())
    >>> stats = await pipe.run()
"""

__version__ = "0.1.0"

from .errors import (
    PipeError,
    SourceError,
    DecodeError,
    SourceTransportError,
    EndOfInput,
    ConvertError,
    UnrepresentableValue,
    StructureTooDeep,
    SinkError,
    SinkTransportError,
    DeliveryError,
    SerializationError,
    ConfigError,
    ConflictingOffsetSpec,
    InvalidOffset,
)
from .converter import ValueConverter, convert, row_to_json, row_to_json_bytes
from .offsets import Beginning, Absolute, FromEnd, OffsetPolicy, CommitStrategy, ConsumerState
from .connectors import (
    RawRecord, SerializedRecord, RecordSource, RecordSink, MemorySink,
    FileRowIterator, TableAppender,
)
from .kafka import SubscriptionStream, SubscriptionConfig, TopicPublisher, TopicPublisherConfig
from .otlp import MetricsForwarder, OtlpConfig
from .observability import PipeObserver
from .pipe import StreamPipe, PipeState, PipeStats, ErrorPolicy, passthrough, json_rows
from .config import PqstreamConfig, load_config

__all__ = [
    '__version__',
    # Errors
    'PipeError', 'SourceError', 'DecodeError', 'SourceTransportError', 'EndOfInput',
    'ConvertError', 'UnrepresentableValue', 'StructureTooDeep',
    'SinkError', 'SinkTransportError', 'DeliveryError', 'SerializationError',
    'ConfigError', 'ConflictingOffsetSpec', 'InvalidOffset',
    # Conversion
    'ValueConverter', 'convert', 'row_to_json', 'row_to_json_bytes',
    # Offsets
    'Beginning', 'Absolute', 'FromEnd', 'OffsetPolicy', 'CommitStrategy', 'ConsumerState',
    # Connectors
    'RawRecord', 'SerializedRecord', 'RecordSource', 'RecordSink', 'MemorySink',
    'FileRowIterator', 'TableAppender',
    'SubscriptionStream', 'SubscriptionConfig', 'TopicPublisher', 'TopicPublisherConfig',
    'MetricsForwarder', 'OtlpConfig',
    # Pipe
    'PipeObserver', 'StreamPipe', 'PipeState', 'PipeStats', 'ErrorPolicy',
    'passthrough', 'json_rows',
    # Config
    'PqstreamConfig', 'load_config',
]
