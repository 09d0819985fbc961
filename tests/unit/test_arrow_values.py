"""Tests for the Arrow → typed value adapter."""

from datetime import date
from decimal import Decimal as PyDecimal

import pyarrow as pa
import pytest

from pqstream import values as v
from pqstream.arrow_values import array_values, batch_rows
from pqstream.converter import convert


class TestPrimitiveColumns:

    def test_signed_and_unsigned_ints(self):
        assert array_values(pa.array([1, None], type=pa.int16())) == [v.Int(1, 16), v.NULL]
        assert array_values(pa.array([2 ** 64 - 1], type=pa.uint64())) == [v.UInt(2 ** 64 - 1, 64)]

    def test_floats(self):
        assert array_values(pa.array([1.5, None], type=pa.float32())) == [v.Float(1.5, 32), v.NULL]

    def test_bool_string_binary(self):
        assert array_values(pa.array([True, None])) == [v.Bool(True), v.NULL]
        assert array_values(pa.array(["a", None])) == [v.Str("a"), v.NULL]
        assert array_values(pa.array([b"\x00\x01"], type=pa.binary())) == [v.Bytes(b"\x00\x01")]

    def test_null_column(self):
        assert array_values(pa.nulls(2)) == [v.NULL, v.NULL]

    def test_dictionary_encoded_strings(self):
        array = pa.array(["a", "b", "a"]).dictionary_encode()
        assert array_values(array) == [v.Str("a"), v.Str("b"), v.Str("a")]

    def test_chunked_array(self):
        array = pa.chunked_array([[1, 2], [3]], type=pa.int64())
        assert array_values(array) == [v.Int(1), v.Int(2), v.Int(3)]


class TestDecimalColumns:

    def test_small_precision_uses_int32(self):
        array = pa.array([PyDecimal("123.45"), None], type=pa.decimal128(5, 2))
        values = array_values(array)
        assert values[0].encoding is v.DecimalEncoding.INT32
        assert values[0].scale == 2
        assert values[0].unscaled_int == 12345
        assert values[1] == v.NULL
        assert convert(values[0]) == "12345"

    def test_medium_precision_uses_int64(self):
        array = pa.array([PyDecimal("-1.5")], type=pa.decimal128(12, 1))
        value = array_values(array)[0]
        assert value.encoding is v.DecimalEncoding.INT64
        assert convert(value) == "-15"

    def test_large_precision_uses_bytes(self):
        array = pa.array([PyDecimal("12345678901234567890.5")], type=pa.decimal128(25, 1))
        value = array_values(array)[0]
        assert value.encoding is v.DecimalEncoding.BYTES
        assert convert(value) == "123456789012345678905"


class TestTemporalColumns:

    def test_date32(self):
        array = pa.array([date(1970, 1, 1), date(1969, 12, 31), None], type=pa.date32())
        assert array_values(array) == [v.Date(0), v.Date(-1), v.NULL]

    @pytest.mark.parametrize("unit,raw,expected", [
        ("s", 1, v.TimestampMillis(1000)),
        ("ms", 1500, v.TimestampMillis(1500)),
        ("us", 7, v.TimestampMicros(7)),
        ("ns", 1_500_000, v.TimestampMicros(1500)),
    ])
    def test_timestamp_units(self, unit, raw, expected):
        array = pa.array([raw, None], type=pa.timestamp(unit))
        assert array_values(array) == [expected, v.NULL]

    def test_timezone_aware_timestamp_keeps_utc_value(self):
        array = pa.array([1000], type=pa.timestamp("ms", tz="Europe/Paris"))
        assert convert(array_values(array)[0]) == "1970-01-01T00:00:01Z"


class TestNestedColumns:

    def test_list_column(self):
        array = pa.array([[1, 2], None, []], type=pa.list_(pa.int32()))
        assert array_values(array) == [
            v.ListValue((v.Int(1, 32), v.Int(2, 32))),
            v.NULL,
            v.ListValue(()),
        ]

    def test_map_column(self):
        array = pa.array([[("a", 1), ("b", 2)], None], type=pa.map_(pa.string(), pa.int64()))
        assert array_values(array) == [
            v.MapValue(((v.Str("a"), v.Int(1)), (v.Str("b"), v.Int(2)))),
            v.NULL,
        ]

    def test_struct_column(self):
        struct_type = pa.struct([("x", pa.int64()), ("y", pa.string())])
        array = pa.array([{"x": 1, "y": "a"}, None], type=struct_type)
        assert array_values(array) == [
            v.RecordValue((("x", v.Int(1)), ("y", v.Str("a")))),
            v.NULL,
        ]

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            array_values(pa.array([1], type=pa.duration("s")))


class TestBatchRows:

    def test_rows_in_order(self, sample_arrow_table):
        batch = sample_arrow_table.to_batches()[0]
        rows = list(batch_rows(batch))

        assert len(rows) == 3
        assert rows[0].names == ("id", "name", "score")
        assert [convert(row) for row in rows] == [
            {"id": 1, "name": "alpha", "score": 1.5},
            {"id": 2, "name": None, "score": 2.25},
            {"id": 3, "name": "gamma", "score": None},
        ]

    def test_unsupported_column_fails_eagerly(self):
        batch = pa.RecordBatch.from_pydict({"d": pa.array([1], type=pa.duration("s"))})
        with pytest.raises(TypeError):
            batch_rows(batch)
