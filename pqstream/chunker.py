"""Split a parquet file into fixed-size chunk files."""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

import pyarrow as pa
import pyarrow.parquet as pq

from .errors import DecodeError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_ROWS = 50_000


def split_parquet(path: Union[str, Path], output_dir: Union[str, Path] = "output",
                  prefix: str = "output_part", chunk_size: int = DEFAULT_CHUNK_ROWS,
                  on_chunk: Optional[Callable[[int, Path], None]] = None) -> List[Path]:
    """
    Write ``path`` out again as ``<output_dir>/<prefix>_<n>.parquet`` files.

    Each chunk holds at most ``chunk_size`` rows and keeps the source schema.

    Returns:
        Paths of the written chunks, in order
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        source = pq.ParquetFile(path)
    except (OSError, pa.ArrowException) as e:
        raise DecodeError(f"Cannot open parquet file {path}: {e}") from e

    written: List[Path] = []
    try:
        for index, batch in enumerate(source.iter_batches(batch_size=chunk_size)):
            target = out_dir / f"{prefix}_{index}.parquet"
            with pq.ParquetWriter(str(target), batch.schema) as writer:
                writer.write_batch(batch)
            written.append(target)
            logger.debug(f"Wrote chunk {index} ({batch.num_rows} rows) to {target}")
            if on_chunk is not None:
                on_chunk(index, target)
    except pa.ArrowException as e:
        raise DecodeError(f"Failed to decode {path}: {e}") from e
    finally:
        source.close()

    logger.info(f"Split {path} into {len(written)} chunks")
    return written
