#!/usr/bin/env python3
"""
OTLP/HTTP metrics forwarder.

Each incoming record is a binary-encoded ``ResourceMetrics`` message. It is
decoded, wrapped into a single-resource ``ExportMetricsServiceRequest`` and
POSTed to a collector. One record makes one request.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
from google.protobuf.message import DecodeError as ProtobufDecodeError
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import (
    ExportMetricsServiceRequest,
)
from opentelemetry.proto.metrics.v1.metrics_pb2 import ResourceMetrics

from .connectors.base import RecordSink, SerializedRecord
from .errors import DeliveryError, SerializationError, SinkTransportError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:4318/v1/metrics"
OTEL_METRICS_PREFIX = "otelm:"

PROTOBUF_CONTENT_TYPE = "application/x-protobuf"
EXPORT_MESSAGE_TYPE = "opentelemetry.proto.collector.metrics.v1.ExportMetricsServiceRequest"


def parse_destination(dest: str) -> Optional[str]:
    """
    Return the collector endpoint for an ``otelm:[endpoint]`` destination.

    ``otelm:`` alone selects :data:`DEFAULT_ENDPOINT`. Any other destination
    (a plain topic name) returns ``None``.
    """
    if not dest.startswith(OTEL_METRICS_PREFIX):
        return None
    endpoint = dest[len(OTEL_METRICS_PREFIX):]
    return endpoint or DEFAULT_ENDPOINT


def wrap_resource_metrics(raw: bytes) -> bytes:
    """Decode one ResourceMetrics payload and re-encode it as an export request."""
    resource_metrics = ResourceMetrics()
    resource_metrics.ParseFromString(raw)
    request = ExportMetricsServiceRequest(resource_metrics=[resource_metrics])
    return request.SerializeToString()


@dataclass
class OtlpConfig:
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 10.0


class MetricsForwarder(RecordSink):
    """
    Sink delivering metrics envelopes to an OTLP/HTTP collector.

    A non-2xx answer raises :class:`DeliveryError` with the status code and
    the response body. Timeouts and connection failures raise
    :class:`SinkTransportError`.

    Example:
        >>> forwarder = MetricsForwarder(OtlpConfig("http://collector:4318/v1/metrics"))
        >>> async with forwarder:
        >>>     await forwarder.write_batch([forwarder.prepare(SerializedRecord(raw))])
    """

    def __init__(self, config: Optional[OtlpConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or OtlpConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.delivered = 0

        logger.info(f"MetricsForwarder initialized: endpoint={self.config.endpoint}")

    async def start(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": PROTOBUF_CONTENT_TYPE,
                    "x-protobuf-message": EXPORT_MESSAGE_TYPE,
                },
            )

    def prepare(self, record: SerializedRecord) -> SerializedRecord:
        if record.value is None:
            raise SerializationError("Empty metrics record", record.offset)
        try:
            envelope = wrap_resource_metrics(record.value)
        except ProtobufDecodeError as e:
            raise SerializationError(f"Malformed ResourceMetrics payload: {e}", record.offset) from e
        return SerializedRecord(
            value=envelope, key=record.key, offset=record.offset, partition=record.partition
        )

    async def send_metrics_packet(self, envelope: bytes) -> None:
        """POST one encoded export request."""
        if self._client is None:
            await self.start()

        try:
            response = await self._client.post(self.config.endpoint, content=envelope)
        except httpx.TimeoutException as e:
            raise SinkTransportError(
                f"Timed out after {self.config.timeout}s sending metrics to {self.config.endpoint}"
            ) from e
        except httpx.TransportError as e:
            raise SinkTransportError(f"Failed to reach {self.config.endpoint}: {e}") from e

        if response.is_success:
            logger.debug("Successfully sent metrics to collector")
            self.delivered += 1
            return

        raise DeliveryError(self.config.endpoint, response.status_code, response.text)

    async def write_batch(self, records: Sequence[SerializedRecord]) -> None:
        for record in records:
            await self.send_metrics_packet(record.value)

    async def stop(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info(f"MetricsForwarder stopped: {self.delivered} envelopes delivered")
