#!/usr/bin/env python3
"""
Kafka topic publisher for pqstream.

Writes serialized records to a topic in order, with producer-side batching
and compression.

Features:
- A send is accepted once queued in the producer's buffer
- write_batch() returns once that batch is acknowledged (backpressure)
- flush() waits for anything still queued in the producer
- Timeouts and broker errors surface as SinkTransportError
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from ..connectors.base import RecordSink, SerializedRecord
from ..errors import SerializationError, SinkTransportError

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


@dataclass
class TopicPublisherConfig:
    """Configuration for a topic publisher."""

    # Kafka connection
    bootstrap_servers: str
    topic: str
    client_id: str = "pqstream"

    # Key for records that arrive without one
    default_key: Optional[bytes] = None

    # Producer configuration
    compression_type: Optional[str] = "gzip"  # gzip, snappy, lz4, zstd
    acks: Any = "all"  # 0, 1, all
    linger_ms: int = 10
    max_batch_size: int = 1 * MIB
    max_request_size: int = 10 * MIB
    request_timeout_ms: int = 40_000

    # Seconds to wait for a batch to be acknowledged
    flush_timeout: float = 60.0

    # Additional Kafka producer config
    producer_config: Dict[str, Any] = field(default_factory=dict)


class TopicPublisher(RecordSink):
    """
    Kafka sink writing one message per record.

    Example:
        >>> sink = TopicPublisher(TopicPublisherConfig("localhost:9092", "parquet"))
        >>> async with sink:
        >>>     await sink.write_batch([SerializedRecord(b'{"a": 1}')])
        >>>     await sink.flush()
    """

    def __init__(self, config: TopicPublisherConfig,
                 producer_factory: Optional[Callable[..., Any]] = None):
        """
        Initialize topic publisher.

        Args:
            config: Publisher configuration
            producer_factory: Alternative producer constructor (defaults to AIOKafkaProducer)
        """
        self.config = config
        self._producer_factory = producer_factory or AIOKafkaProducer
        self._producer = None
        self._running = False
        self.sent = 0

        logger.info(f"TopicPublisher initialized: topic={config.topic}, compression={config.compression_type}")

    @property
    def destination(self) -> str:
        return f"{self.config.bootstrap_servers}/{self.config.topic}"

    async def start(self):
        """Start the Kafka producer."""
        if self._running:
            return

        producer_config = {
            'bootstrap_servers': self.config.bootstrap_servers,
            'client_id': self.config.client_id,
            'compression_type': self.config.compression_type,
            'acks': self.config.acks,
            'linger_ms': self.config.linger_ms,
            'max_batch_size': self.config.max_batch_size,
            'max_request_size': self.config.max_request_size,
            'request_timeout_ms': self.config.request_timeout_ms,
            **self.config.producer_config
        }

        self._producer = self._producer_factory(**producer_config)
        try:
            await self._producer.start()
        except KafkaError as e:
            self._producer = None
            raise SinkTransportError(f"Failed to connect producer to {self.destination}: {e}") from e

        self._running = True
        logger.info(f"TopicPublisher started: topic={self.config.topic}")

    def prepare(self, record: SerializedRecord) -> SerializedRecord:
        value = record.value
        if isinstance(value, str):
            value = value.encode('utf-8')
        elif value is not None and not isinstance(value, (bytes, bytearray)):
            raise SerializationError(
                f"Cannot publish value of type {type(value).__name__}", record.offset
            )
        key = record.key if record.key is not None else self.config.default_key
        return SerializedRecord(
            value=value, key=key, offset=record.offset, partition=record.partition
        )

    async def write_batch(self, records: Sequence[SerializedRecord]) -> None:
        """Queue every send of the batch, then wait for their acknowledgements."""
        if not self._running:
            await self.start()

        futures = []
        try:
            for record in records:
                futures.append(await self._producer.send(
                    self.config.topic, value=record.value, key=record.key
                ))
        except KafkaError as e:
            raise SinkTransportError(f"Failed to queue message for {self.destination}: {e}") from e

        await self._await_acks(futures)
        self.sent += len(futures)

    async def _await_acks(self, futures: List[asyncio.Future]) -> None:
        if not futures:
            return
        try:
            await asyncio.wait_for(asyncio.gather(*futures), timeout=self.config.flush_timeout)
        except asyncio.TimeoutError as e:
            raise SinkTransportError(
                f"Timed out after {self.config.flush_timeout}s waiting for acks from {self.destination}"
            ) from e
        except KafkaError as e:
            raise SinkTransportError(f"Delivery to {self.destination} failed: {e}") from e

    async def flush(self) -> None:
        """Block until every queued send is acknowledged."""
        if self._producer is None:
            return
        try:
            await asyncio.wait_for(self._producer.flush(), timeout=self.config.flush_timeout)
        except asyncio.TimeoutError as e:
            raise SinkTransportError(
                f"Timed out after {self.config.flush_timeout}s flushing {self.destination}"
            ) from e
        logger.debug(f"Flushed {self.sent} messages to {self.destination}")

    async def stop(self):
        """Stop the Kafka producer."""
        if not self._running:
            return

        self._running = False

        if self._producer:
            await self._producer.stop()
            self._producer = None

        logger.info(f"TopicPublisher stopped: topic={self.config.topic}")
