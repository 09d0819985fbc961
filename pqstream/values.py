#!/usr/bin/env python3
"""
Typed column values.

A closed set of immutable value types describing one decoded parquet cell.
Nested values (lists, maps, records) hold other values, so a row is a finite
tree of these objects.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple, Union


class DecimalEncoding(Enum):
    """Physical layout of a decimal's unscaled value."""
    INT32 = "int32"   # 4-byte big-endian two's complement
    INT64 = "int64"   # 8-byte big-endian two's complement
    BYTES = "bytes"   # arbitrary-length big-endian two's complement


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class Int:
    """Signed integer of 8, 16, 32 or 64 bits."""
    value: int
    bits: int = 64


@dataclass(frozen=True)
class UInt:
    """Unsigned integer of 8, 16, 32 or 64 bits."""
    value: int
    bits: int = 64


@dataclass(frozen=True)
class Float:
    """IEEE float; ``bits`` is 16, 32 or 64."""
    value: float
    bits: int = 64


@dataclass(frozen=True)
class Str:
    value: str


@dataclass(frozen=True)
class Bytes:
    value: bytes


@dataclass(frozen=True)
class Decimal:
    """Decimal as scale plus big-endian unscaled bytes."""
    scale: int
    unscaled: bytes
    encoding: DecimalEncoding = DecimalEncoding.BYTES

    @property
    def unscaled_int(self) -> int:
        return int.from_bytes(self.unscaled, byteorder="big", signed=True)

    @classmethod
    def from_int(cls, unscaled: int, scale: int = 0,
                 encoding: DecimalEncoding = DecimalEncoding.BYTES) -> "Decimal":
        """Build a decimal from an integer unscaled value."""
        if encoding is DecimalEncoding.INT32:
            width = 4
        elif encoding is DecimalEncoding.INT64:
            width = 8
        else:
            # Minimal two's complement width, at least one byte
            width = max(1, (unscaled + (unscaled < 0)).bit_length() // 8 + 1)
        return cls(scale=scale,
                   unscaled=unscaled.to_bytes(width, byteorder="big", signed=True),
                   encoding=encoding)


@dataclass(frozen=True)
class Date:
    """Days since 1970-01-01 (signed 32-bit)."""
    days: int


@dataclass(frozen=True)
class TimestampMillis:
    value: int


@dataclass(frozen=True)
class TimestampMicros:
    value: int


@dataclass(frozen=True)
class ListValue:
    items: Tuple["Value", ...] = ()


@dataclass(frozen=True)
class MapValue:
    """Ordered key/value pairs. Keys are not required to be unique."""
    entries: Tuple[Tuple["Value", "Value"], ...] = ()


@dataclass(frozen=True)
class RecordValue:
    """Ordered (name, value) pairs: a nested row, or a top-level row."""
    fields: Tuple[Tuple[str, "Value"], ...] = field(default_factory=tuple)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.fields)


Value = Union[
    Null, Bool, Int, UInt, Float, Str, Bytes, Decimal, Date,
    TimestampMillis, TimestampMicros, ListValue, MapValue, RecordValue,
]

# A row is a top-level record
Row = RecordValue

NULL = Null()
