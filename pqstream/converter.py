#!/usr/bin/env python3
"""
Value → JSON conversion.

Projects typed column values onto the JSON value model without losing
information:

- integers of every width become JSON numbers (64-bit values included)
- non-finite floats become ``null``
- bytes become lowercase hex with no prefix
- decimals become the base-10 string of the unscaled integer; the scale is
  not applied
- dates become ``YYYY-MM-DD``; timestamps become UTC ISO-8601 strings with a
  ``Z`` suffix. Values outside the calendar range become ``null``
- map keys are converted and then stringified; the last duplicate wins

The functions here are pure. The only failure modes are
:class:`StructureTooDeep` and :class:`UnrepresentableValue`.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Type

import orjson

from . import values as v
from .errors import StructureTooDeep, UnrepresentableValue

# Rows from real parquet schemas stay far below this; it only stops runaway
# recursion before the interpreter's own limit.
DEFAULT_MAX_DEPTH = 256

EPOCH_DATE = date(1970, 1, 1)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

JsonValue = Any


def _date_to_json(days: int) -> Optional[str]:
    try:
        return (EPOCH_DATE + timedelta(days=days)).isoformat()
    except OverflowError:
        return None


def _timestamp_to_json(ts: int, divisor: int) -> Optional[str]:
    """Render ``ts`` units of ``1/divisor`` seconds since the epoch."""
    seconds, remainder = divmod(ts, divisor)
    micros = remainder * (1_000_000 // divisor)
    try:
        moment = EPOCH + timedelta(seconds=seconds, microseconds=micros)
    except OverflowError:
        return None
    return moment.replace(tzinfo=None).isoformat() + "Z"


def _float_to_json(value: float) -> Optional[float]:
    if math.isfinite(value):
        return float(value)
    return None


def _key_to_str(key: JsonValue) -> str:
    if isinstance(key, str):
        return key
    return orjson.dumps(key).decode("utf-8")


class ValueConverter:
    """
    Recursive converter from :mod:`pqstream.values` to JSON values.

    Args:
        max_depth: Maximum nesting depth before :class:`StructureTooDeep`
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self._scalars: Dict[Type, Callable[[Any], JsonValue]] = {
            v.Null: lambda x: None,
            v.Bool: lambda x: bool(x.value),
            v.Int: lambda x: int(x.value),
            v.UInt: lambda x: int(x.value),
            v.Float: lambda x: _float_to_json(x.value),
            v.Str: lambda x: x.value,
            v.Bytes: lambda x: bytes(x.value).hex(),
            v.Decimal: lambda x: str(x.unscaled_int),
            v.Date: lambda x: _date_to_json(x.days),
            v.TimestampMillis: lambda x: _timestamp_to_json(x.value, 1_000),
            v.TimestampMicros: lambda x: _timestamp_to_json(x.value, 1_000_000),
        }

    def convert(self, value: v.Value) -> JsonValue:
        """Convert a single value to its JSON equivalent."""
        return self._convert(value, 0)

    def _convert(self, value: v.Value, depth: int) -> JsonValue:
        if depth > self.max_depth:
            raise StructureTooDeep(self.max_depth)

        handler = self._scalars.get(type(value))
        if handler is not None:
            return handler(value)

        if isinstance(value, v.ListValue):
            return [self._convert(item, depth + 1) for item in value.items]

        if isinstance(value, v.MapValue):
            obj = {}
            for key, item in value.entries:
                obj[_key_to_str(self._convert(key, depth + 1))] = self._convert(item, depth + 1)
            return obj

        if isinstance(value, v.RecordValue):
            obj = {}
            for name, item in value.fields:
                obj[name] = self._convert(item, depth + 1)
            return obj

        raise UnrepresentableValue(value)

    def row_to_json(self, row: v.Row) -> Dict[str, JsonValue]:
        """Convert a top-level row into a JSON object."""
        return self.convert(row)

    def row_to_json_bytes(self, row: v.Row) -> bytes:
        """Convert a row and serialize it as compact UTF-8 JSON."""
        return orjson.dumps(self.row_to_json(row))


_default = ValueConverter()


def convert(value: v.Value) -> JsonValue:
    """Convert a value with the default converter."""
    return _default.convert(value)


def row_to_json(row: v.Row) -> Dict[str, JsonValue]:
    return _default.row_to_json(row)


def row_to_json_bytes(row: v.Row) -> bytes:
    return _default.row_to_json_bytes(row)
