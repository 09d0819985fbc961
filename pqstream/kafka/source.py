#!/usr/bin/env python3
"""
Kafka subscription source for pqstream.

Reads raw records from every partition of one topic, starting at the position
chosen by an :class:`~pqstream.offsets.OffsetPolicy`.

Features:
- Beginning / absolute / from-end start positions, resolved per partition
- Resumes from the group's committed position when one exists
- Explicit commits driven by the pipe (never commits undelivered records)
- Terminal transport errors surface as SourceTransportError
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaError

from ..connectors.base import RawRecord, RecordSource
from ..errors import SourceTransportError
from ..offsets import OffsetPolicy

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionConfig:
    """Configuration for a topic subscription."""

    # Kafka connection
    bootstrap_servers: str
    topic: str

    # Start position and commit strategy
    policy: OffsetPolicy = field(default_factory=OffsetPolicy)

    client_id: str = "pqstream"
    max_poll_records: int = 500
    fetch_max_wait_ms: int = 500
    request_timeout_ms: int = 40_000

    # Additional Kafka consumer config
    consumer_config: Dict[str, Any] = field(default_factory=dict)


class SubscriptionStream(RecordSource):
    """
    Kafka source yielding one :class:`RawRecord` per message.

    The stream is unbounded: ``next()`` suspends until a message arrives and
    never returns ``None``. Stop it with a record limit or by cancelling the
    pipe.

    Example:
        >>> policy = OffsetPolicy.from_options(end=10)
        >>> source = SubscriptionStream(SubscriptionConfig("localhost:9092", "events", policy))
        >>> async with source:
        >>>     record = await source.next()
    """

    def __init__(self, config: SubscriptionConfig,
                 consumer_factory: Optional[Callable[..., Any]] = None):
        """
        Initialize subscription.

        Args:
            config: Subscription configuration
            consumer_factory: Alternative consumer constructor (defaults to AIOKafkaConsumer)
        """
        self.config = config
        self._consumer_factory = consumer_factory or AIOKafkaConsumer
        self._consumer = None
        self._partitions: List[TopicPartition] = []
        self._running = False

        logger.info(
            f"SubscriptionStream initialized: topic={config.topic}, "
            f"start={config.policy.spec}, group={config.policy.group_id}"
        )

    @property
    def partitions(self) -> List[TopicPartition]:
        return list(self._partitions)

    async def start(self):
        """Connect, assign all partitions and seek to the start position."""
        if self._running:
            return

        consumer_config = {
            'bootstrap_servers': self.config.bootstrap_servers,
            'client_id': self.config.client_id,
            'group_id': self.config.policy.group_id,
            'enable_auto_commit': False,
            'auto_offset_reset': 'earliest',
            'max_poll_records': self.config.max_poll_records,
            'fetch_max_wait_ms': self.config.fetch_max_wait_ms,
            'request_timeout_ms': self.config.request_timeout_ms,
            **self.config.consumer_config
        }

        self._consumer = self._consumer_factory(**consumer_config)
        try:
            await self._consumer.start()
            await self._assign()
        except KafkaError as e:
            await self._close_consumer()
            raise SourceTransportError(
                f"Failed to subscribe to {self.config.topic} at {self.config.bootstrap_servers}: {e}"
            ) from e
        except SourceTransportError:
            await self._close_consumer()
            raise

        self._running = True
        logger.info(f"SubscriptionStream started: topic={self.config.topic}, partitions={len(self._partitions)}")

    async def _assign(self):
        topic = self.config.topic
        # Fetch metadata so partition info is available
        await self._consumer.topics()
        partition_ids = self._consumer.partitions_for_topic(topic)
        if not partition_ids:
            raise SourceTransportError(f"Topic {topic} does not exist or has no partitions")

        self._partitions = [TopicPartition(topic, p) for p in sorted(partition_ids)]
        self._consumer.assign(self._partitions)

        beginning = await self._consumer.beginning_offsets(self._partitions)
        end = await self._consumer.end_offsets(self._partitions)

        for tp in self._partitions:
            position = None
            if self.config.policy.group_id:
                position = await self._consumer.committed(tp)
            if position is None:
                position = self.config.policy.resolve(beginning[tp], end[tp])
            else:
                logger.info(f"Resuming {tp.topic}[{tp.partition}] from committed offset {position}")
            self._consumer.seek(tp, position)
            logger.debug(
                f"Partition {tp.partition}: start={position} "
                f"(beginning={beginning[tp]}, end={end[tp]})"
            )

    async def next(self) -> Optional[RawRecord]:
        if not self._running:
            await self.start()

        try:
            msg = await self._consumer.getone()
        except KafkaError as e:
            raise SourceTransportError(f"Subscription to {self.config.topic} failed: {e}") from e

        return RawRecord(
            value=msg.value,
            key=msg.key,
            offset=msg.offset,
            partition=msg.partition,
        )

    async def commit(self, positions: Dict[int, int]) -> None:
        """
        Commit next-read positions, keyed by partition.

        Requires a consumer group.
        """
        if not positions:
            return
        if not self.config.policy.group_id:
            logger.debug("No consumer group configured, skipping commit")
            return
        offsets = {
            TopicPartition(self.config.topic, partition): position
            for partition, position in positions.items()
        }
        try:
            await self._consumer.commit(offsets)
        except KafkaError as e:
            raise SourceTransportError(f"Failed to commit offsets for {self.config.topic}: {e}") from e

    async def _close_consumer(self):
        if self._consumer is not None:
            await self._consumer.stop()
            self._consumer = None

    async def stop(self):
        """Stop the Kafka consumer."""
        if not self._running:
            return

        self._running = False
        await self._close_consumer()

        logger.info(f"SubscriptionStream stopped: topic={self.config.topic}")
