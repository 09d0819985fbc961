#!/usr/bin/env python3
"""
Arrow → typed value adapter.

Walks pyarrow arrays column by column and produces :mod:`pqstream.values`
objects, so that rows read through ``pyarrow.parquet`` can be handed to the
converter. Temporal columns are read through their integer storage so that
no precision is lost on the way.
"""

import decimal
from typing import Iterator, List

import pyarrow as pa
import pyarrow.types as pat

from . import values as v

_MS_PER_DAY = 86_400_000

_SIGNED_BITS = {
    pa.int8(): 8, pa.int16(): 16, pa.int32(): 32, pa.int64(): 64,
}
_UNSIGNED_BITS = {
    pa.uint8(): 8, pa.uint16(): 16, pa.uint32(): 32, pa.uint64(): 64,
}
_FLOAT_BITS = {
    pa.float16(): 16, pa.float32(): 32, pa.float64(): 64,
}


def _unscaled(value: decimal.Decimal, scale: int) -> int:
    """Exact unscaled integer of ``value`` at ``scale``."""
    sign, digits, exponent = value.as_tuple()
    unscaled = int("".join(map(str, digits)) or "0")
    shift = exponent + scale
    if shift >= 0:
        unscaled *= 10 ** shift
    else:
        unscaled //= 10 ** (-shift)
    return -unscaled if sign else unscaled


def _decimal_encoding(precision: int) -> v.DecimalEncoding:
    # Mirrors the physical types parquet picks for a given precision
    if precision <= 9:
        return v.DecimalEncoding.INT32
    if precision <= 18:
        return v.DecimalEncoding.INT64
    return v.DecimalEncoding.BYTES


def _timestamp_values(array: pa.Array) -> List[v.Value]:
    unit = array.type.unit
    raw = array.cast(pa.int64()).to_pylist()
    out: List[v.Value] = []
    for item in raw:
        if item is None:
            out.append(v.NULL)
        elif unit == "s":
            out.append(v.TimestampMillis(item * 1_000))
        elif unit == "ms":
            out.append(v.TimestampMillis(item))
        elif unit == "us":
            out.append(v.TimestampMicros(item))
        else:
            # Nanoseconds have no value variant; truncate to micros
            out.append(v.TimestampMicros(item // 1_000))
    return out


def _nested_slices(array, children: List[v.Value]) -> List[v.Value]:
    """Regroup flattened child values using list offsets."""
    offsets = array.offsets.to_pylist()
    valid = array.is_valid().to_pylist()
    out: List[v.Value] = []
    for i in range(len(array)):
        if valid[i]:
            out.append(children[offsets[i]:offsets[i + 1]])
        else:
            out.append(None)
    return out


def array_values(array: pa.Array) -> List[v.Value]:
    """Convert every slot of ``array`` into a typed value."""
    if isinstance(array, pa.ChunkedArray):
        out: List[v.Value] = []
        for chunk in array.chunks:
            out.extend(array_values(chunk))
        return out

    t = array.type

    if pat.is_dictionary(t):
        return array_values(array.dictionary_decode())

    if pat.is_null(t):
        return [v.NULL] * len(array)

    if pat.is_boolean(t):
        return [v.NULL if x is None else v.Bool(x) for x in array.to_pylist()]

    if t in _SIGNED_BITS:
        bits = _SIGNED_BITS[t]
        return [v.NULL if x is None else v.Int(x, bits) for x in array.to_pylist()]

    if t in _UNSIGNED_BITS:
        bits = _UNSIGNED_BITS[t]
        return [v.NULL if x is None else v.UInt(x, bits) for x in array.to_pylist()]

    if t in _FLOAT_BITS:
        bits = _FLOAT_BITS[t]
        return [v.NULL if x is None else v.Float(float(x), bits) for x in array.to_pylist()]

    if pat.is_string(t) or pat.is_large_string(t):
        return [v.NULL if x is None else v.Str(x) for x in array.to_pylist()]

    if pat.is_binary(t) or pat.is_large_binary(t) or pat.is_fixed_size_binary(t):
        return [v.NULL if x is None else v.Bytes(x) for x in array.to_pylist()]

    if pat.is_decimal(t):
        encoding = _decimal_encoding(t.precision)
        return [
            v.NULL if x is None else v.Decimal.from_int(_unscaled(x, t.scale), t.scale, encoding)
            for x in array.to_pylist()
        ]

    if pat.is_date32(t):
        return [v.NULL if x is None else v.Date(x) for x in array.cast(pa.int32()).to_pylist()]

    if pat.is_date64(t):
        return [
            v.NULL if x is None else v.Date(x // _MS_PER_DAY)
            for x in array.cast(pa.int64()).to_pylist()
        ]

    if pat.is_timestamp(t):
        return _timestamp_values(array)

    if pat.is_time32(t):
        return [v.NULL if x is None else v.Int(x, 32) for x in array.cast(pa.int32()).to_pylist()]

    if pat.is_time64(t):
        return [v.NULL if x is None else v.Int(x, 64) for x in array.cast(pa.int64()).to_pylist()]

    if pat.is_map(t):
        keys = array_values(array.keys)
        items = array_values(array.items)
        pairs = list(zip(keys, items))
        return [
            v.NULL if chunk is None else v.MapValue(tuple(chunk))
            for chunk in _nested_slices(array, pairs)
        ]

    if pat.is_list(t) or pat.is_large_list(t):
        children = array_values(array.values)
        return [
            v.NULL if chunk is None else v.ListValue(tuple(chunk))
            for chunk in _nested_slices(array, children)
        ]

    if pat.is_fixed_size_list(t):
        children = array_values(array.flatten())
        size = t.list_size
        valid = array.is_valid().to_pylist()
        out = []
        position = 0
        for i in range(len(array)):
            if valid[i]:
                out.append(v.ListValue(tuple(children[position:position + size])))
                position += size
            else:
                out.append(v.NULL)
        return out

    if pat.is_struct(t):
        names = [t.field(i).name for i in range(t.num_fields)]
        columns = [array_values(array.field(i)) for i in range(t.num_fields)]
        valid = array.is_valid().to_pylist()
        out = []
        for row in range(len(array)):
            if valid[row]:
                out.append(v.RecordValue(tuple(
                    (name, column[row]) for name, column in zip(names, columns)
                )))
            else:
                out.append(v.NULL)
        return out

    raise TypeError(f"Unsupported arrow type: {t}")


def batch_rows(batch: pa.RecordBatch) -> Iterator[v.Row]:
    """Iterate ``batch`` as one :class:`~pqstream.values.RecordValue` per row.

    Columns are decoded eagerly, so unsupported types fail here rather than
    half way through the rows.
    """
    names = batch.schema.names
    columns = [array_values(batch.column(i)) for i in range(batch.num_columns)]
    return _zip_rows(names, columns, batch.num_rows)


def _zip_rows(names, columns, num_rows: int) -> Iterator[v.Row]:
    for row in range(num_rows):
        yield v.RecordValue(tuple(
            (name, column[row]) for name, column in zip(names, columns)
        ))
