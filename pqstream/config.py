#!/usr/bin/env python3
"""
Configuration management for pqstream.

Settings come from dataclass defaults, then ``PQSTREAM_*`` environment
variables, then an optional JSON file. Command-line options override all
three.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigError

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def _env_number(env: Mapping[str, str], name: str, default, cast: Callable[[str], Any]):
    """Read a numeric environment setting, reporting bad values as configuration errors."""
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from None


@dataclass
class KafkaSettings:
    """Kafka connection and producer tuning."""
    bootstrap_servers: str = "localhost:9092"
    client_id: str = "pqstream"
    compression_type: str = "gzip"
    max_batch_size: int = 1 * MIB
    max_request_size: int = 10 * MIB
    request_timeout_ms: int = 40_000


@dataclass
class PipeSettings:
    """Pipe batching and error handling."""
    batch_size: int = 1000
    batch_bytes: int = 1 * MIB
    batch_timeout: Optional[float] = 1.0  # seconds a partial batch may wait, None to wait for a full one
    chunk_size: int = 50_000
    progress_every: int = 5000
    error_policy: str = "abort"  # abort, skip
    dead_letter_topic: Optional[str] = None
    max_depth: int = 256
    flush_timeout: float = 60.0


@dataclass
class OtlpSettings:
    """OTLP/HTTP metrics collector."""
    endpoint: str = "http://localhost:4318/v1/metrics"
    timeout: float = 10.0


@dataclass
class TableSettings:
    """Analytical store target."""
    database: str = "pqstream.duckdb"
    table: str = "events"
    columns: Tuple[str, ...] = ("id", "timestamp", "payload")
    create_table: bool = True


@dataclass
class PqstreamConfig:
    """Main pqstream configuration."""
    kafka: KafkaSettings = field(default_factory=KafkaSettings)
    pipe: PipeSettings = field(default_factory=PipeSettings)
    otlp: OtlpSettings = field(default_factory=OtlpSettings)
    table: TableSettings = field(default_factory=TableSettings)
    log_level: str = "INFO"
    metrics_port: Optional[int] = None

    def load_from_environment(self, environ=None) -> "PqstreamConfig":
        """Apply ``PQSTREAM_*`` environment variables."""
        env = os.environ if environ is None else environ

        self.kafka.bootstrap_servers = env.get('PQSTREAM_BOOTSTRAP_SERVERS', self.kafka.bootstrap_servers)
        self.kafka.client_id = env.get('PQSTREAM_CLIENT_ID', self.kafka.client_id)
        self.kafka.compression_type = env.get('PQSTREAM_COMPRESSION', self.kafka.compression_type)

        self.pipe.batch_size = _env_number(env, 'PQSTREAM_BATCH_SIZE', self.pipe.batch_size, int)
        self.pipe.batch_bytes = _env_number(env, 'PQSTREAM_BATCH_BYTES', self.pipe.batch_bytes, int)
        if env.get('PQSTREAM_BATCH_TIMEOUT') == '':
            self.pipe.batch_timeout = None
        else:
            self.pipe.batch_timeout = _env_number(
                env, 'PQSTREAM_BATCH_TIMEOUT', self.pipe.batch_timeout, float
            )
        self.pipe.chunk_size = _env_number(env, 'PQSTREAM_CHUNK_SIZE', self.pipe.chunk_size, int)
        self.pipe.progress_every = _env_number(env, 'PQSTREAM_PROGRESS_EVERY', self.pipe.progress_every, int)
        self.pipe.error_policy = env.get('PQSTREAM_ERROR_POLICY', self.pipe.error_policy)
        self.pipe.dead_letter_topic = env.get('PQSTREAM_DEAD_LETTER_TOPIC', self.pipe.dead_letter_topic)

        self.otlp.endpoint = env.get('PQSTREAM_OTLP_ENDPOINT', self.otlp.endpoint)
        self.otlp.timeout = _env_number(env, 'PQSTREAM_OTLP_TIMEOUT', self.otlp.timeout, float)

        self.table.database = env.get('PQSTREAM_DATABASE', self.table.database)
        self.table.table = env.get('PQSTREAM_TABLE', self.table.table)

        self.log_level = env.get('PQSTREAM_LOG_LEVEL', self.log_level)
        self.metrics_port = _env_number(env, 'PQSTREAM_METRICS_PORT', self.metrics_port, int)
        return self

    def update_from_dict(self, data: Dict[str, Any]) -> "PqstreamConfig":
        """Update configuration from a nested dictionary."""
        for section in ('kafka', 'pipe', 'otlp', 'table'):
            target = getattr(self, section)
            for key, value in data.get(section, {}).items():
                if not hasattr(target, key):
                    raise ConfigError(f"Unknown setting {section}.{key}")
                if key == 'columns':
                    value = tuple(value)
                setattr(target, key, value)

        for key in ('log_level', 'metrics_port'):
            if key in data:
                setattr(self, key, data[key])
        return self

    def load_from_file(self, path: Path) -> "PqstreamConfig":
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e
        logger.debug(f"Loaded configuration from {path}")
        return self.update_from_dict(data)

    def validate(self) -> "PqstreamConfig":
        if self.pipe.error_policy not in ('abort', 'skip'):
            raise ConfigError(f"Unknown error policy {self.pipe.error_policy!r} (expected abort or skip)")
        if self.pipe.batch_size < 1:
            raise ConfigError("batch_size must be at least 1")
        if self.pipe.chunk_size < 1:
            raise ConfigError("chunk_size must be at least 1")
        if self.pipe.batch_timeout is not None and self.pipe.batch_timeout < 0:
            raise ConfigError("batch_timeout must not be negative")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)


def load_config(config_file: Optional[str] = None, environ=None) -> PqstreamConfig:
    """
    Build the effective configuration.

    ``config_file`` falls back to ``PQSTREAM_CONFIG_FILE`` when not given.
    """
    env = os.environ if environ is None else environ
    config = PqstreamConfig().load_from_environment(env)

    config_file = config_file or env.get('PQSTREAM_CONFIG_FILE')
    if config_file:
        config.load_from_file(Path(config_file))

    return config.validate()
