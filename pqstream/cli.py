# -*- coding: utf-8 -*-
"""pqstream Command Line Interface - stream parquet rows and topic records between systems."""

import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from .config import PqstreamConfig, load_config
from .connectors.duckdb_sink import TableAppender
from .connectors.parquet import FileRowIterator
from .converter import ValueConverter
from .errors import PipeError
from .kafka.sink import TopicPublisher, TopicPublisherConfig
from .kafka.source import SubscriptionConfig, SubscriptionStream
from .observability import PipeObserver, start_metrics_server
from .offsets import ConsumerState, OffsetPolicy
from .otlp import MetricsForwarder, OtlpConfig, parse_destination
from .pipe import ErrorPolicy, PipeStats, StreamPipe, json_rows, passthrough

logger = logging.getLogger(__name__)

# Console for rich output
console = Console()

# Main CLI app
app = typer.Typer(
    name="pqstream",
    help="Stream parquet rows and topic records into topics, metrics collectors and tables",
    add_completion=False,
)


def _setup(config_file: Optional[str], log_level: Optional[str]) -> PqstreamConfig:
    config = load_config(config_file)
    level = (log_level or config.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return config


def _observer(name: str, config: PqstreamConfig) -> PipeObserver:
    observer = PipeObserver(
        name=name,
        progress_every=config.pipe.progress_every,
        on_progress=lambda count: console.print(f"{count} records"),
    )
    if config.metrics_port:
        start_metrics_server(observer.registry, port=config.metrics_port)
    return observer


def _publisher(config: PqstreamConfig, topic: str, bootstrap: Optional[str] = None,
               key: Optional[bytes] = None) -> TopicPublisher:
    kafka = config.kafka
    return TopicPublisher(TopicPublisherConfig(
        bootstrap_servers=bootstrap or kafka.bootstrap_servers,
        topic=topic,
        client_id=kafka.client_id,
        default_key=key,
        compression_type=kafka.compression_type,
        max_batch_size=kafka.max_batch_size,
        max_request_size=kafka.max_request_size,
        request_timeout_ms=kafka.request_timeout_ms,
        flush_timeout=config.pipe.flush_timeout,
    ))


def _pipe_options(config: PqstreamConfig, bootstrap: Optional[str] = None) -> dict:
    options = {
        'batch_size': config.pipe.batch_size,
        'batch_bytes': config.pipe.batch_bytes,
        'batch_timeout': config.pipe.batch_timeout,
        'error_policy': ErrorPolicy(config.pipe.error_policy),
    }
    if config.pipe.dead_letter_topic:
        options['dead_letter'] = _publisher(config, config.pipe.dead_letter_topic, bootstrap)
    return options


async def _execute(pipe: StreamPipe) -> PipeStats:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform/loop
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, pipe.stop)
    return await pipe.run()


def _run(pipe: StreamPipe) -> PipeStats:
    try:
        stats = asyncio.run(_execute(pipe))
    except PipeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    if stats.skipped:
        console.print(f"Processed {stats.processed} records ({stats.skipped} skipped)")
    else:
        console.print(f"Processed {stats.processed} records")
    return stats


# ============================================================================
# COMMANDS
# ============================================================================

@app.callback()
def main_callback():
    """pqstream - parquet and topic streaming pipes."""
    pass


@app.command()
def version():
    """Show pqstream version."""
    from . import __version__
    console.print(f"[bold blue]pqstream[/bold blue] version [bold green]{__version__}[/bold green]")


@app.command()
def produce(
    file: Path = typer.Argument(..., help="Path to the Parquet file"),
    topic: str = typer.Option("parquet", "-t", "--topic", help="Topic to produce JSON rows to"),
    bootstrap: Optional[str] = typer.Option(None, "-b", "--bootstrap", help="Kafka bootstrap servers"),
    key: Optional[str] = typer.Option(None, "-k", "--key", help="Key for every produced record"),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", help="Rows decoded per chunk"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Records per sink batch"),
    skip_errors: bool = typer.Option(False, "--skip-errors", help="Skip rows that fail conversion"),
    config_file: Optional[str] = typer.Option(None, "--config", help="JSON configuration file"),
    log_level: Optional[str] = typer.Option(None, "-l", "--loglevel", help="Logging level"),
):
    """Convert Parquet rows to JSON and publish them to a topic."""
    try:
        config = _setup(config_file, log_level)
        if chunk_size is not None:
            config.pipe.chunk_size = chunk_size
        if batch_size is not None:
            config.pipe.batch_size = batch_size
        if skip_errors:
            config.pipe.error_policy = "skip"
        config.validate()
    except PipeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    if not file.exists():
        console.print(f"[bold red]Error:[/bold red] File not found: {file}")
        raise typer.Exit(code=1)

    logger.info(f"Processing file {file} into topic {topic}")

    pipe = StreamPipe(
        FileRowIterator(file, chunk_size=config.pipe.chunk_size),
        _publisher(config, topic, bootstrap, key.encode('utf-8') if key else None),
        json_rows(ValueConverter(max_depth=config.pipe.max_depth)),
        observer=_observer("produce", config),
        name="produce",
        **_pipe_options(config, bootstrap),
    )
    _run(pipe)


@app.command()
def forward(
    in_topic: str = typer.Argument(..., help="Topic to consume records from"),
    out_dest: str = typer.Argument(
        ..., help='Destination: a topic name, or "otelm:[endpoint]" for an OTLP/HTTP metrics collector'
    ),
    in_bootstrap: Optional[str] = typer.Option(None, "--in-bootstrap", help="Bootstrap servers to consume from"),
    out_bootstrap: Optional[str] = typer.Option(None, "--out-bootstrap", help="Bootstrap servers to produce to"),
    num_records: Optional[int] = typer.Option(None, "-n", "--num-records", help="Stop after N records"),
    start: Optional[int] = typer.Option(None, "-s", "--start", help="Absolute start offset"),
    end: Optional[int] = typer.Option(None, "-e", "--end", help="Start N records before the end"),
    group: Optional[str] = typer.Option(None, "-g", "--group", help="Consumer group for committed offsets"),
    batch_timeout: Optional[float] = typer.Option(
        None, "--batch-timeout", help="Seconds a partial batch may wait before it is delivered"
    ),
    skip_errors: bool = typer.Option(False, "--skip-errors", help="Skip records the destination cannot decode"),
    config_file: Optional[str] = typer.Option(None, "--config", help="JSON configuration file"),
    log_level: Optional[str] = typer.Option(None, "-l", "--loglevel", help="Logging level"),
):
    """Forward topic records to another topic or to a metrics collector."""
    try:
        config = _setup(config_file, log_level)
        policy = OffsetPolicy.from_options(start=start, end=end, group_id=group)
        if batch_timeout is not None:
            config.pipe.batch_timeout = batch_timeout
        if skip_errors:
            config.pipe.error_policy = "skip"
        config.validate()
    except PipeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    endpoint = parse_destination(out_dest)
    if endpoint is not None:
        sink = MetricsForwarder(OtlpConfig(endpoint=endpoint, timeout=config.otlp.timeout))
    else:
        sink = _publisher(config, out_dest, out_bootstrap)

    source = SubscriptionStream(SubscriptionConfig(
        bootstrap_servers=in_bootstrap or config.kafka.bootstrap_servers,
        topic=in_topic,
        policy=policy,
        client_id=config.kafka.client_id,
    ))

    pipe = StreamPipe(
        source, sink, passthrough,
        limit=num_records,
        consumer_state=ConsumerState(policy),
        observer=_observer("forward", config),
        name="forward",
        **_pipe_options(config, out_bootstrap),
    )
    _run(pipe)


@app.command()
def append(
    topic: str = typer.Argument(..., help="Topic of JSON events to consume"),
    database: Optional[str] = typer.Option(None, "-d", "--database", help="DuckDB database path"),
    table: Optional[str] = typer.Option(None, "--table", help="Target table"),
    bootstrap: Optional[str] = typer.Option(None, "-b", "--bootstrap", help="Kafka bootstrap servers"),
    group: str = typer.Option("ch-consumer", "-g", "--group", help="Consumer group"),
    batch_timeout: Optional[float] = typer.Option(
        None, "--batch-timeout", help="Seconds a partial batch may wait before it is delivered"
    ),
    num_records: Optional[int] = typer.Option(None, "-n", "--num-records", help="Stop after N records"),
    start: Optional[int] = typer.Option(None, "-s", "--start", help="Absolute start offset"),
    end: Optional[int] = typer.Option(None, "-e", "--end", help="Start N records before the end (default 0)"),
    skip_errors: bool = typer.Option(False, "--skip-errors", help="Skip malformed events"),
    config_file: Optional[str] = typer.Option(None, "--config", help="JSON configuration file"),
    log_level: Optional[str] = typer.Option(None, "-l", "--loglevel", help="Logging level"),
):
    """Append JSON events from a topic to an analytical table."""
    try:
        config = _setup(config_file, log_level)
        if start is None and end is None:
            end = 0
        policy = OffsetPolicy.from_options(start=start, end=end, group_id=group)
        sink = TableAppender(
            database=database or config.table.database,
            table=table or config.table.table,
            columns=config.table.columns,
            create_table=config.table.create_table,
        )
        if batch_timeout is not None:
            config.pipe.batch_timeout = batch_timeout
        if skip_errors:
            config.pipe.error_policy = "skip"
        config.validate()
    except PipeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    source = SubscriptionStream(SubscriptionConfig(
        bootstrap_servers=bootstrap or config.kafka.bootstrap_servers,
        topic=topic,
        policy=policy,
        client_id=config.kafka.client_id,
    ))

    pipe = StreamPipe(
        source, sink, passthrough,
        limit=num_records,
        consumer_state=ConsumerState(policy),
        observer=_observer("append", config),
        name="append",
        **_pipe_options(config, bootstrap),
    )
    _run(pipe)


@app.command()
def chunk(
    parquet_file: Path = typer.Argument(..., help="Input Parquet file path"),
    output_dir: Path = typer.Option(Path("output"), "-o", "--output-dir", help="Output directory for chunked files"),
    prefix: str = typer.Option("output_part", "-p", "--output-part", help="Output file prefix"),
    chunk_size: int = typer.Option(50_000, "-c", "--chunk-size", help="Number of records per chunk"),
):
    """Split a Parquet file into chunk files."""
    from .chunker import split_parquet

    try:
        split_parquet(
            parquet_file, output_dir, prefix, chunk_size,
            on_chunk=lambda index, path: console.print(f"Wrote chunk {index} to {path}"),
        )
    except (PipeError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print("Finished splitting the Parquet file.")


def main():
    app()


if __name__ == "__main__":
    main()
