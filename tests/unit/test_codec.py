"""
Unit tests for timestamp and value encodings.

Tests cover:
- RFC 3339 formatting and parsing
- Client datetime formats
- Numeric value encoding
"""

import math
from datetime import datetime, timedelta, timezone

import pytest

from devicelog.logstore.store.codec import (
    ZERO_TIME,
    encode_value,
    format_float,
    format_timestamp,
    parse_client_datetime,
    parse_timestamp,
)
from devicelog.logstore.store.errors import EntryValidationError


class TestTimestamps:
    """Tests for timestamp encoding."""

    def test_utc_uses_z_suffix(self):
        """UTC timestamps end with Z."""
        value = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-05-01T10:00:00Z"

    def test_offset_preserved(self):
        """Non-UTC offsets are written numerically."""
        value = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2024-05-01T12:00:00+02:00"

    def test_microseconds_dropped(self):
        """Second precision only."""
        value = datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-05-01T10:00:00Z"

    def test_naive_treated_as_utc(self):
        """Naive datetimes are formatted as UTC."""
        assert format_timestamp(datetime(2024, 5, 1, 10, 0, 0)) == "2024-05-01T10:00:00Z"

    def test_zero_time(self):
        """The lenient default timestamp formats like any other."""
        assert format_timestamp(ZERO_TIME) == "0001-01-01T00:00:00Z"

    def test_parse_z(self):
        """Z suffix parses as UTC."""
        parsed = parse_timestamp("2024-05-01T10:00:00Z")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def test_parse_offset(self):
        """Offsets are kept."""
        parsed = parse_timestamp("2024-05-01T12:00:00+02:00")
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def test_parse_fractional_seconds(self):
        """Fractional seconds written by other tools are accepted."""
        parsed = parse_timestamp("2024-05-01T10:00:00.5Z")
        assert parsed.microsecond == 500000

    def test_parse_rejects_naive(self):
        """Stored timestamps must carry an offset."""
        with pytest.raises(ValueError):
            parse_timestamp("2024-05-01T10:00:00")

    def test_parse_rejects_garbage(self):
        """Unparseable text raises ValueError."""
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")

    def test_format_parse_round_trip(self):
        """Formatted timestamps parse back to the same instant."""
        value = datetime(2023, 12, 31, 23, 59, 59, tzinfo=timezone(timedelta(hours=-5)))
        assert parse_timestamp(format_timestamp(value)) == value


class TestClientDatetime:
    """Tests for client-supplied datetimes."""

    def test_rfc3339(self):
        """RFC 3339 is accepted as is."""
        parsed = parse_client_datetime("2024-05-01T12:00:00+02:00")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def test_simple_format_is_utc(self):
        """YYYY-MM-DDTHH:MM:SS is read as UTC."""
        parsed = parse_client_datetime("2024-05-01T10:00:00")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert parsed.tzinfo is not None

    def test_missing(self):
        """Empty datetime is a validation error."""
        with pytest.raises(EntryValidationError) as exc_info:
            parse_client_datetime("")
        assert exc_info.value.field_name == "datetime"
        assert "missing required field" in exc_info.value.message

    def test_invalid(self):
        """Other formats are rejected."""
        with pytest.raises(EntryValidationError) as exc_info:
            parse_client_datetime("01/05/2024 10:00")
        assert "invalid datetime format" in exc_info.value.message


class TestValueEncoding:
    """Tests for value encoding."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (21.0, "21"),
            (21.5, "21.5"),
            (0.1, "0.1"),
            (-3.25, "-3.25"),
            (100.0, "100"),
            (0.0, "0"),
            (1e21, "1000000000000000000000"),
            (1e-7, "0.0000001"),
            (123456789.125, "123456789.125"),
        ],
    )
    def test_floats(self, value, expected):
        """Floats use shortest positional form without trailing zeros."""
        assert encode_value(value) == expected

    def test_non_finite(self):
        """NaN and infinities get fixed spellings."""
        assert format_float(math.nan) == "NaN"
        assert format_float(math.inf) == "+Inf"
        assert format_float(-math.inf) == "-Inf"

    def test_int(self):
        assert encode_value(42) == "42"

    def test_bool(self):
        """Booleans are lowercase words, not 1/0."""
        assert encode_value(True) == "true"
        assert encode_value(False) == "false"

    def test_none(self):
        assert encode_value(None) == ""

    def test_string_unchanged(self):
        """Strings are stored verbatim, including numeric-looking ones."""
        assert encode_value("21.50") == "21.50"
        assert encode_value("hello, world") == "hello, world"

    def test_structured_values_as_json(self):
        """Lists and objects are stored as compact JSON."""
        assert encode_value({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
        assert encode_value([1, "x"]) == '[1,"x"]'
