# -*- coding: utf-8 -*-
"""pqstream observability - progress reporting and Prometheus counters."""

import logging
from typing import Callable, Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 5000


class PipeObserver:
    """
    Observability handle passed into a pipe.

    Holds its own Prometheus registry so several pipes (and tests) never
    share counters. Nothing here influences control flow.

    Args:
        name: Pipe name, used as the ``pipe`` label
        progress_every: Emit a progress observation every N records
        on_progress: Optional callback receiving the running record count
        registry: Registry to register counters in (a fresh one by default)
    """

    def __init__(self, name: str = "pipe", progress_every: int = PROGRESS_INTERVAL,
                 on_progress: Optional[Callable[[int], None]] = None,
                 registry: Optional[CollectorRegistry] = None):
        self.name = name
        self.progress_every = progress_every
        self.on_progress = on_progress
        self.registry = registry or CollectorRegistry()

        self.records_processed = Counter(
            'pqstream_records_processed_total',
            'Records converted and accepted into a batch',
            ['pipe'],
            registry=self.registry
        )
        self.records_skipped = Counter(
            'pqstream_records_skipped_total',
            'Records rejected by the per-record error policy',
            ['pipe', 'error_type'],
            registry=self.registry
        )
        self.batches_written = Counter(
            'pqstream_batches_written_total',
            'Batches delivered to the sink',
            ['pipe'],
            registry=self.registry
        )
        self.bytes_written = Counter(
            'pqstream_bytes_written_total',
            'Serialized bytes delivered to the sink',
            ['pipe'],
            registry=self.registry
        )

    def record_processed(self, count: int):
        """Count one processed record; ``count`` is the running total."""
        self.records_processed.labels(pipe=self.name).inc()
        if self.progress_every and count % self.progress_every == 0:
            logger.info(f"{self.name}: {count} records")
            if self.on_progress is not None:
                self.on_progress(count)

    def record_skipped(self, error: Exception, offset: Optional[int] = None):
        self.records_skipped.labels(pipe=self.name, error_type=type(error).__name__).inc()
        logger.warning(f"{self.name}: skipped record at offset {offset}: {error}")

    def record_batch(self, records: int, nbytes: int):
        self.batches_written.labels(pipe=self.name).inc()
        self.bytes_written.labels(pipe=self.name).inc(nbytes)
        logger.debug(f"{self.name}: wrote batch of {records} records ({nbytes} bytes)")

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry).decode('utf-8')


def start_metrics_server(registry: CollectorRegistry, port: int = 9090, host: str = "0.0.0.0"):
    """Start Prometheus metrics HTTP server."""
    from prometheus_client import start_http_server
    start_http_server(port, addr=host, registry=registry)
    logger.info(f"Started metrics server on http://{host}:{port}/metrics")
